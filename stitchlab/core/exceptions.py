"""Application errors and their RFC 7807 rendering.

Only two kinds of failure leave a request as an error: the caller asked for
something malformed or outside its scope (4xx), or the rollup store failed
(5xx). Missing production data is never an error; calculators answer zero.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from stitchlab.core.logging import get_logger
from stitchlab.core.problem_details import ProblemDetailResponse, problem_response

logger = get_logger(__name__)


class StitchLabError(Exception):
    """Base class for errors rendered as problem details.

    Attributes:
        message: Human-readable explanation, sent as ``detail``.
        code: Machine-readable code, sent as ``code`` and used for ``type``.
        status_code: HTTP status.
        details: Structured context; returned to the client for 4xx only.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    @property
    def title(self) -> str:
        """Short summary derived from the code (``SCOPE_REJECTED`` -> ``Scope Rejected``)."""
        return self.code.replace("_", " ").title()

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class DatabaseError(StitchLabError):
    """The rollup store or a source table could not be read or written.

    A refresh that raises this has persisted nothing; callers retry the whole
    batch.
    """

    def __init__(
        self,
        message: str = "Database operation failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code="DATABASE_ERROR", status_code=500, details=details)


class BadRequestError(StitchLabError):
    """Malformed or out-of-bounds request: inverted or oversized range, unknown role."""

    def __init__(
        self,
        message: str = "Bad request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code="BAD_REQUEST", status_code=400, details=details)


class ForbiddenError(StitchLabError):
    """Caller is not allowed to see or change the requested data."""

    def __init__(
        self,
        message: str = "Forbidden",
        code: str = "FORBIDDEN",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, status_code=403, details=details)


async def stitchlab_exception_handler(
    _request: Request,
    exc: StitchLabError,
) -> ProblemDetailResponse:
    """Render a StitchLabError.

    Client errors are logged at warning and echo their ``details``; server
    errors are logged with the traceback and keep their details internal.
    """
    log = logger.warning if exc.is_client_error else logger.error
    log(
        "app.error_handled",
        error=exc.message,
        error_type=type(exc).__name__,
        error_code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
        exc_info=not exc.is_client_error,
    )

    return problem_response(
        status=exc.status_code,
        title=exc.title,
        detail=exc.message,
        error_code=exc.code,
        details=exc.details if exc.is_client_error and exc.details else None,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    """Render request validation failures (bad dates, presets, limits) as 422."""
    field_errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": str(error.get("msg", "Validation failed")),
            "type": str(error.get("type", "unknown")),
        }
        for error in exc.errors()
    ]

    logger.warning(
        "app.validation_error",
        error_count=len(field_errors),
        path=request.url.path,
        fields=[e["field"] for e in field_errors],
    )

    return problem_response(
        status=422,
        title="Validation Error",
        detail=f"Request validation failed with {len(field_errors)} error(s).",
        error_code="VALIDATION_ERROR",
        errors=field_errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    """Last resort: log the traceback, answer a generic 500."""
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )

    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred. Quote the request_id when reporting it.",
        error_code="INTERNAL_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the problem-details handlers on ``app``."""
    app.add_exception_handler(StitchLabError, stitchlab_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, validation_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
