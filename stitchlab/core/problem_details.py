"""RFC 7807 problem details.

Every error leaving the API is rendered as ``application/problem+json`` so the
dashboard client can branch on ``type``/``code`` instead of parsing messages.

Reference: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from stitchlab.core.logging import request_id_ctx

ERROR_TYPE_BASE = "/errors"

ERROR_TYPES = {
    "BAD_REQUEST": f"{ERROR_TYPE_BASE}/bad-request",
    "VALIDATION_ERROR": f"{ERROR_TYPE_BASE}/validation",
    "FORBIDDEN": f"{ERROR_TYPE_BASE}/forbidden",
    "SCOPE_REJECTED": f"{ERROR_TYPE_BASE}/scope-rejected",
    "DATABASE_ERROR": f"{ERROR_TYPE_BASE}/database",
    "INTERNAL_ERROR": f"{ERROR_TYPE_BASE}/internal",
}


def error_type_uri(code: str) -> str:
    """Type URI for an error code; unregistered codes get a derived path."""
    return ERROR_TYPES.get(code, f"{ERROR_TYPE_BASE}/{code.lower().replace('_', '-')}")


class ProblemDetail(BaseModel):
    """Problem details body with the ``code``, ``request_id``, ``errors`` and
    ``details`` extensions."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="about:blank", description="URI identifying the problem type.")
    title: str = Field(..., description="Short summary of the problem type.")
    status: int = Field(..., ge=400, le=599, description="HTTP status code.")
    detail: str | None = Field(None, description="Explanation specific to this occurrence.")
    instance: str | None = Field(None, description="URI reference for this occurrence.")
    code: str | None = Field(None, description="Machine-readable error code.")
    request_id: str | None = Field(None, description="Request correlation ID.")
    errors: list[dict[str, Any]] | None = Field(
        None, description="Field-level validation errors (422 only)."
    )
    details: dict[str, Any] | None = Field(
        None, description="Structured context of a client error, e.g. the limit exceeded."
    )


class ProblemDetailResponse(JSONResponse):
    media_type = "application/problem+json"


def problem_response(
    status: int,
    title: str,
    detail: str | None = None,
    error_code: str = "INTERNAL_ERROR",
    errors: list[dict[str, Any]] | None = None,
    details: dict[str, Any] | None = None,
) -> ProblemDetailResponse:
    """Build a problem+json response tagged with the current request id."""
    request_id = request_id_ctx.get()
    problem = ProblemDetail(
        type=error_type_uri(error_code),
        title=title,
        status=status,
        detail=detail,
        instance=f"/requests/{request_id}" if request_id else None,
        code=error_code,
        request_id=request_id,
        errors=errors,
        details=details,
    )
    return ProblemDetailResponse(
        status_code=status,
        content=problem.model_dump(mode="json", exclude_none=True),
    )
