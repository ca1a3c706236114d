"""Test fixtures for analytics module."""

from datetime import date

import pytest

from stitchlab.features.analytics.schemas import DateRange
from stitchlab.features.analytics.scope import CallerIdentity, Role
from stitchlab.features.rollups.periods import Granularity
from stitchlab.features.rollups.schemas import (
    AnalyticsAggregate,
    PendingFromTailors,
    RollupDimension,
)
from stitchlab.features.rollups.service import RollupService
from stitchlab.features.rollups.store import RollupStore


@pytest.fixture
def first_week() -> DateRange:
    """The seeded week, 2024-01-01 .. 2024-01-07."""
    return DateRange(start_date=date(2024, 1, 1), end_date=date(2024, 1, 7))


@pytest.fixture
def admin(production_data) -> CallerIdentity:
    """Admin bound to the seeded tenant."""
    return CallerIdentity(role=Role.ADMIN, tenant_id=production_data.tenant_id)


@pytest.fixture
def vendor_a(production_data) -> CallerIdentity:
    """Vendor caller for vendor A (owns style A)."""
    return CallerIdentity(
        role=Role.VENDOR,
        tenant_id=production_data.tenant_id,
        vendor_id=production_data.vendor_a,
    )


@pytest.fixture
def tailor_a(production_data) -> CallerIdentity:
    """Tailor caller for tailor A."""
    return CallerIdentity(
        role=Role.TAILOR,
        tenant_id=production_data.tenant_id,
        tailor_id=production_data.tailor_a,
    )


@pytest.fixture
async def daily_rollups(db_session, production_data):
    """Refresh daily rollups for the seeded week and commit them."""
    service = RollupService(db_session)
    await service.refresh(
        date(2024, 1, 1), date(2024, 1, 7), Granularity.DAILY, production_data.tenant_id
    )
    await db_session.commit()
    return production_data


@pytest.fixture
async def pending_drop(db_session):
    """Tenant rows where pending pcs fall from 100 (Jan 7) to 50 (Jan 14).

    Single-tenant rows (NULL tenant) with nothing else set.
    """

    def tenant_row(day: str, pcs: int) -> AnalyticsAggregate:
        return AnalyticsAggregate(
            period=Granularity.DAILY,
            date=day,
            dimension=RollupDimension.TENANT,
            pending_from_tailors=PendingFromTailors(assignments=1, pcs=pcs),
        )

    await RollupStore(db_session).save(
        [
            tenant_row("2024-01-05", 120),
            tenant_row("2024-01-07", 100),
            tenant_row("2024-01-10", 80),
            tenant_row("2024-01-14", 50),
        ],
        Granularity.DAILY,
    )
    await db_session.commit()
