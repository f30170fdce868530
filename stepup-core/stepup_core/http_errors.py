"""
HTTP Error Mapping
==================
Maps step-up error kinds to HTTP responses.

CRITICAL: Never expose internal error details to end users. Infrastructure
failures are logged with their technical message and answered generically.
"""

from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
import structlog

from stepup_core.errors import ErrorKind, RateLimitedError, StepUpError, CodeMismatchError

logger = structlog.get_logger(__name__)


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.NOT_FOUND: 400,
    ErrorKind.EXPIRED: 400,
    ErrorKind.LOCKED_OUT: 429,
    ErrorKind.MISMATCH: 400,
    ErrorKind.DELIVERY_FAILED: 503,
    ErrorKind.STORE_UNAVAILABLE: 503,
}

USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "Invalid or expired OTP.",
    ErrorKind.EXPIRED: "Invalid or expired OTP.",
    ErrorKind.MISMATCH: "Invalid or expired OTP.",
    ErrorKind.LOCKED_OUT: "Too many invalid OTP attempts.",
    ErrorKind.DELIVERY_FAILED: "OTP service is unavailable.",
    ErrorKind.STORE_UNAVAILABLE: "OTP service is unavailable.",
}


def error_body(error: StepUpError) -> Dict[str, Any]:
    """User-safe JSON body for a step-up error."""
    body: Dict[str, Any] = {
        "code": error.kind.value.upper(),
        "message": USER_MESSAGES.get(error.kind, error.message),
    }
    if isinstance(error, CodeMismatchError):
        body["attemptsRemaining"] = error.attempts_remaining
    return body


def _headers(error: StepUpError):
    if isinstance(error, RateLimitedError) and error.retry_after:
        return {"Retry-After": str(max(1, error.retry_after))}
    return None


def _log(error: StepUpError) -> None:
    if error.kind.is_infrastructure:
        logger.error("step_up_unavailable", kind=error.kind.value, error=error.message)
    else:
        logger.info("step_up_rejected", kind=error.kind.value, error=error.message)


def to_http_exception(error: StepUpError) -> HTTPException:
    """Convert a step-up error to a FastAPI HTTPException."""
    _log(error)
    return HTTPException(
        status_code=STATUS_CODES[error.kind],
        detail=error_body(error),
        headers=_headers(error),
    )


async def step_up_exception_handler(request: Request, exc: StepUpError) -> JSONResponse:
    _log(exc)
    return JSONResponse(
        status_code=STATUS_CODES[exc.kind],
        content=error_body(exc),
        headers=_headers(exc),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Answer uncaught StepUpError raised by route handlers."""
    app.add_exception_handler(StepUpError, step_up_exception_handler)
