from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import EngineError, ValidationError

logger = structlog.get_logger(__name__)


async def engine_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, EngineError)
    if exc.status_code >= 500:
        logger.warning(
            "request_failed",
            path=request.url.path,
            code=exc.code,
            error_type=type(exc).__name__,
        )
    headers = None
    reset_at = getattr(exc, "reset_at", None)
    if reset_at is not None:
        headers = {"X-RateLimit-Reset": str(reset_at)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.as_detail()},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    error = ValidationError("Invalid request body.")
    return JSONResponse(
        status_code=error.status_code,
        content={
            "detail": {
                **error.as_detail(),
                "errors": jsonable_encoder(exc.errors(), exclude={"ctx", "input"}),
            }
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
