"""Pydantic models for request and response bodies.

Clients written against the older interface send the language under
``lang``; both spellings are accepted.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class RunRequest(BaseModel):
    """Request body for running a snippet."""

    language: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("language", "lang"),
        description="Language tag, e.g. 'python', 'cpp' or 'wasm'. Case-insensitive.",
    )
    code: Optional[str] = Field(
        default=None,
        description="Source code, or a base64-encoded module for 'wasm'.",
    )


class RunResponse(BaseModel):
    """Result of one run: exactly one of ``output`` and ``error`` is set."""

    id: str
    language: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None


class LanguageInfo(BaseModel):
    """An enabled language tag and the backend serving it."""

    language: str
    backend: str
    timeout_ms: int
    has_compile_step: bool
    supports_hard_preemption: bool
    supports_step_budget: bool


class LanguagesResponse(BaseModel):
    languages: List[LanguageInfo] = Field(default_factory=list)
