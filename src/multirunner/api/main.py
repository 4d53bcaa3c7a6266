"""
FastAPI application for the multi-language runner.

This module configures logging, loads the configuration, builds the
dispatcher and registers the HTTP routes.  Authentication through the
``x-api-key`` header is enforced when an API key is configured, and
request bodies above the configured size are rejected before they are
parsed.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Dict, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config import Config
from ..dispatcher import Dispatcher, normalize_language
from ..models import LanguageInfo, LanguagesResponse, RunRequest, RunResponse


logger = logging.getLogger("multirunner")

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[multirunner] %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


config = Config.from_env()

logger.setLevel(config.log_level)

logger.info(
    "Loaded config: allowed_langs=%s, workspace_root=%s, max_output_chars=%s, auth=%s",
    config.allowed_langs,
    config.workspace_root,
    config.max_output_chars,
    "on" if config.api_key else "off",
)

dispatcher = Dispatcher(config)

MISSING_FIELDS = "Missing lang or code"

app = FastAPI(title="Multi-language Runner", version="0.1.0")


@app.middleware("http")
async def guard(request: Request, call_next):
    """Enforce API key authentication and the request body size limit."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")
    logger.debug("Incoming request: %s %s from %s", method, path, client)

    if config.api_key and request.headers.get("x-api-key") != config.api_key:
        logger.warning("Invalid API key for %s %s from %s", method, path, client)
        return JSONResponse(status_code=401, content={"detail": "Invalid API key"})

    length = request.headers.get("content-length")
    if length is not None and length.isdigit() and int(length) > config.max_body_bytes:
        logger.warning("Rejected %s %s: body of %s bytes exceeds limit", method, path, length)
        return JSONResponse(
            status_code=413,
            content={"detail": f"Request body exceeds {config.max_body_bytes} bytes"},
        )

    response = await call_next(request)
    logger.debug("Response: %s %s -> %s", method, path, response.status_code)
    return response


@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies get the same answer as missing fields."""
    return JSONResponse(
        status_code=400,
        content={"id": str(uuid.uuid4()), "error": MISSING_FIELDS},
    )


@app.get("/health")
async def health() -> Dict[str, Union[str, int]]:
    """Return a simple health check response."""
    return {"status": "ok", "pid": os.getpid()}


@app.get("/languages", response_model=LanguagesResponse)
async def languages() -> LanguagesResponse:
    """List the enabled language tags with their budgets and capabilities."""
    return LanguagesResponse(
        languages=[LanguageInfo(**entry) for entry in dispatcher.languages()]
    )


@app.post("/run", response_model=RunResponse, response_model_exclude_none=True)
async def run(req: RunRequest):
    """Run a snippet and return its output or error."""
    request_id = str(uuid.uuid4())
    language = normalize_language(req.language or "")
    if not language or not req.code:
        logger.info("[%s] rejected request: %s", request_id, MISSING_FIELDS)
        return JSONResponse(status_code=400, content={"id": request_id, "error": MISSING_FIELDS})

    outcome = await dispatcher.run(language, req.code, request_id=request_id)
    return RunResponse(
        id=request_id,
        language=language,
        output=outcome.output,
        error=outcome.error,
    )
