"""
Exception handlers: domain errors become {"message", "code"} bodies, anything
unexpected becomes a generic 500. Storage error text never reaches the client.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.exceptions import AppError
from app.core.logging import get_logger

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = "1"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {}
    if exc.retryable:
        headers["Retry-After"] = RETRY_AFTER_SECONDS
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    if exc.status_code >= 500:
        # Detail was logged where the error was raised; keep the chain here
        logger.error("request_failed_internal", code=exc.code, cause=repr(exc.__cause__))

    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code},
        headers=headers or None,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_failed_unhandled", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
