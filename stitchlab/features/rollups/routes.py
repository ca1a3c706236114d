"""API routes for rollup refresh.

Refreshes are normally triggered by the scheduler CLI
(``scripts/refresh_rollups.py``); these endpoints cover operator-triggered
rebuilds.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stitchlab.core.database import get_db
from stitchlab.core.logging import get_logger
from stitchlab.features.analytics.deps import require_privileged
from stitchlab.features.analytics.scope import CallerIdentity
from stitchlab.features.rollups.schemas import (
    RefreshAllRequest,
    RefreshAllResponse,
    RefreshRequest,
    RefreshResponse,
)
from stitchlab.features.rollups.service import RollupService

logger = get_logger(__name__)

router = APIRouter(prefix="/rollups", tags=["rollups"])


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    status_code=status.HTTP_200_OK,
    summary="Rebuild rollups for a date range",
    description="""
Rebuild the rollup rows of every bucket in `[start_date, end_date]`.

**Idempotent**: re-running an overlapping range overwrites the existing rows
of those buckets; it never creates duplicates.

**Granularity**:
- `daily`: one bucket per day, labels `YYYY-MM-DD`
- `weekly`: ISO weeks starting Monday, labels `YYYY-Www`
- `monthly`: calendar months, labels `YYYY-MM`

Rows are written per style, per tailor, plus one tenant-wide row per bucket.
`start_date` after `end_date` processes nothing (`count = 0`).

Requires an admin or manager caller.
""",
)
async def refresh_rollups(
    request: RefreshRequest,
    identity: CallerIdentity = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
) -> RefreshResponse:
    """Rebuild rollups for one tenant.

    Args:
        request: Tenant, date range and granularity.
        identity: Privileged caller.
        db: Database session.

    Returns:
        Buckets processed and rows written.
    """
    # Callers bound to a tenant may only refresh their own tenant
    tenant_id = identity.tenant_id if identity.tenant_id is not None else request.tenant_id

    logger.info(
        "rollups.refresh_request_received",
        tenant_id=tenant_id,
        granularity=request.granularity.value,
        start_date=str(request.start_date),
        end_date=str(request.end_date),
        user_id=identity.user_id,
    )

    service = RollupService(db)
    return await service.refresh(
        start_date=request.start_date,
        end_date=request.end_date,
        granularity=request.granularity,
        tenant_id=tenant_id,
    )


@router.post(
    "/refresh-all",
    response_model=RefreshAllResponse,
    status_code=status.HTTP_200_OK,
    summary="Rebuild rollups for every tenant",
    description="""
Rebuild `[start_date, end_date]` for every tenant found on styles, one tenant
after another. Single-tenant data (no tenant ids) is rebuilt once.

Requires an admin or manager caller. A caller bound to a tenant
(`X-Tenant-Id`) only rebuilds that tenant.
""",
)
async def refresh_all_rollups(
    request: RefreshAllRequest,
    identity: CallerIdentity = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
) -> RefreshAllResponse:
    """Rebuild rollups for all tenants.

    Args:
        request: Date range and granularity.
        identity: Privileged caller.
        db: Database session.

    Returns:
        Tenants, buckets and rows processed.
    """
    service = RollupService(db)
    if identity.tenant_id is not None:
        response = await service.refresh(
            request.start_date, request.end_date, request.granularity, identity.tenant_id
        )
        return RefreshAllResponse(
            tenants=1,
            count=response.count,
            rows_written=response.rows_written,
            granularity=request.granularity,
            duration_ms=response.duration_ms,
        )

    return await service.refresh_all_tenants(
        start_date=request.start_date,
        end_date=request.end_date,
        granularity=request.granularity,
    )
