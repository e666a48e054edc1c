"""Global exception handlers — map SDK exceptions to HTTP status codes.

The workflow SDK raises a small taxonomy of exceptions (see
``intake_workflow.errors``).  Rather than catching them in every route,
we install one handler per family; Starlette dispatches on the exception's
MRO, so the most specific registered class wins.

    SchemaViolation, CaptureError, other ValueError   -> 400
    Unauthorized                                      -> 403
    KeyError (unknown workflow / form)                -> 404
    SequenceViolation, SubmissionInProgress,
    DeviceUnavailable                                 -> 409
    ValidationIncomplete, ValidationRejected          -> 422
    NetworkFailure                                    -> 503
    anything else                                     -> 500

Answers are patient data: exception messages are logged server-side but
only field keys, issue reasons and generic descriptions go to the client.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from intake_workflow.errors import (
    CaptureError,
    DeviceUnavailable,
    SchemaViolation,
    SequenceViolation,
    SubmissionError,
    SubmissionInProgress,
    Unauthorized,
    ValidationIncomplete,
    ValidationRejected,
)

logger = logging.getLogger(__name__)

# --- Client-safe messages keyed by HTTP status code ---
_SAFE_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    403: "Not authorized",
    404: "Resource not found",
    409: "Request conflicts with the current state",
    422: "Submission is incomplete or invalid",
    503: "Storage backend unavailable; please try again",
}


def _safe(status: int, **extra) -> JSONResponse:
    content = {"detail": _SAFE_MESSAGES.get(status, "Invalid request"), **extra}
    return JSONResponse(status_code=status, content=content)


async def schema_violation_handler(request: Request, exc: SchemaViolation) -> JSONResponse:
    """Undeclared or read-only field path → 400, echoing the path."""
    logger.warning("SchemaViolation at %s: %s", request.url, exc)
    return _safe(400, path=exc.path)


async def sequence_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Out-of-order navigation or an edit during submission → 409."""
    logger.warning("%s at %s: %s", type(exc).__name__, request.url, exc)
    extra = {"error": type(exc).__name__}
    if isinstance(exc, SequenceViolation):
        extra["current_index"] = exc.current_index
    return _safe(409, **extra)


async def validation_incomplete_handler(
    request: Request, exc: ValidationIncomplete,
) -> JSONResponse:
    """Blocking field issues → 422 with ``[{key, step_id, reason, message}]``."""
    logger.info("ValidationIncomplete at %s: %d issues", request.url, len(exc.issues))
    return _safe(422, issues=[i.model_dump() for i in exc.issues])


async def capture_error_handler(request: Request, exc: CaptureError) -> JSONResponse:
    """Rejected uploads and camera failures → 400 (409 when the device is busy)."""
    status = 409 if isinstance(exc, DeviceUnavailable) else 400
    logger.warning("%s [%d] at %s: %s", type(exc).__name__, status, request.url, exc)
    return _safe(status, error=type(exc).__name__, slot=exc.slot)


async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    """Gateway failures: 422 rejected, 403 unauthorized, 503 network."""
    if isinstance(exc, ValidationRejected):
        logger.warning("ValidationRejected at %s: %s", request.url, exc)
        return _safe(422, field_errors=exc.field_errors, retryable=False)
    if isinstance(exc, Unauthorized):
        logger.warning("Unauthorized at %s: %s", request.url, exc)
        return _safe(403, retryable=False)
    logger.warning("%s at %s: %s", type(exc).__name__, request.url, exc)
    return _safe(503, retryable=exc.retryable)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Any other ``ValueError`` from the SDK → 400."""
    logger.warning("ValueError at %s: %s", request.url, exc)
    return _safe(400)


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Map ``KeyError`` (unknown workflow, form or step) to 404."""
    logger.warning("KeyError at %s: %s", request.url, exc)
    return _safe(404)


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install every handler above on ``app``."""
    app.add_exception_handler(SchemaViolation, schema_violation_handler)
    app.add_exception_handler(SequenceViolation, sequence_error_handler)
    app.add_exception_handler(SubmissionInProgress, sequence_error_handler)
    app.add_exception_handler(ValidationIncomplete, validation_incomplete_handler)
    app.add_exception_handler(CaptureError, capture_error_handler)
    app.add_exception_handler(SubmissionError, submission_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)
