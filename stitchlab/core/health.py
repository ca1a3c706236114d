"""Liveness and readiness probes."""

from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.database import get_db
from stitchlab.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Probe result."""

    status: Literal["ok", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    dialect: str | None = None


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse, response_model_exclude_none=True)
async def readiness_check(
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Readiness: the rollup store answers a trivial query.

    Answers 503 while the database is unreachable so the load balancer stops
    routing dashboard traffic here.
    """
    dialect = db.get_bind().dialect.name
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(
            "health.database_disconnected",
            dialect=dialect,
            error=str(e),
            error_type=type(e).__name__,
        )
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="unhealthy", database="disconnected", dialect=dialect)

    return HealthResponse(status="ok", database="connected", dialect=dialect)
