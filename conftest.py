"""Shared pytest fixtures for StitchLab tests.

Database-backed tests run against ``TEST_DATABASE_URL`` (default: in-memory
SQLite through aiosqlite), so they do not need a PostgreSQL container.
"""

import os
from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stitchlab.core.database import Base, get_db
from stitchlab.features.production.models import (
    FabricCutting,
    QCInspection,
    SampleVersion,
    Shipment,
    Style,
    Tailor,
    TailorJob,
    TailorPayment,
    Vendor,
    VendorRate,
)
from stitchlab.features.rollups import models as rollup_models  # noqa: F401
from stitchlab.main import app

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def db_engine():
    """Create an engine with all tables; drops them afterwards."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def db_session_maker(db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(db_session_maker):
    """Create async database session for integration tests."""
    async with db_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
async def db_client(db_session_maker):
    """HTTP client whose requests use the test database."""

    async def override_get_db():
        async with db_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


# =============================================================================
# Production data
# =============================================================================

TENANT_ID = 1
OTHER_TENANT_ID = 2


def at(day: int, hour: int = 10) -> datetime:
    """UTC timestamp on January ``day``, 2024."""
    return datetime(2024, 1, day, hour, 0, tzinfo=UTC)


@pytest.fixture
async def production_data(db_session):
    """Seed one week (2024-01-01 .. 2024-01-07) of pipeline records.

    Tenant 1 has two vendors, two styles and two tailors. Tenant 2 has one
    style with a single cutting record, used to check tenant isolation.

    Returns:
        SimpleNamespace with the created reference ids.
    """
    vendor_a = Vendor(tenant_id=TENANT_ID, code="V-A", name="Alpha Brands")
    vendor_b = Vendor(tenant_id=TENANT_ID, code="V-B", name="Beta Retail")
    vendor_other = Vendor(tenant_id=OTHER_TENANT_ID, code="V-X", name="Other Tenant Vendor")
    db_session.add_all([vendor_a, vendor_b, vendor_other])
    await db_session.flush()

    style_a = Style(tenant_id=TENANT_ID, code="ST-100", name="Linen Shirt", vendor_id=vendor_a.id)
    style_b = Style(tenant_id=TENANT_ID, code="ST-200", name=None, vendor_id=vendor_b.id)
    style_other = Style(tenant_id=OTHER_TENANT_ID, code="ST-900", vendor_id=vendor_other.id)
    tailor_a = Tailor(tenant_id=TENANT_ID, code="T-1", name="Ravi Stitching")
    tailor_b = Tailor(tenant_id=TENANT_ID, code="T-2", name="Meena Tailors")
    db_session.add_all([style_a, style_b, style_other, tailor_a, tailor_b])
    await db_session.flush()

    created = at(1, 8)
    db_session.add_all(
        [
            VendorRate(style_id=style_a.id, vendor_id=vendor_a.id, vendor_rate=Decimal("10.00")),
            # Cutting: 3 orders, 500 pcs on Jan 3
            *[
                FabricCutting(
                    tenant_id=TENANT_ID,
                    style_id=style_a.id,
                    cutting_received_pcs=pcs,
                    fabric_received_meters=Decimal("50.00"),
                    wastage_meters=Decimal("5.00"),
                    created_at=at(3),
                    updated_at=at(3),
                )
                for pcs in (200, 200, 100)
            ],
            FabricCutting(
                tenant_id=OTHER_TENANT_ID,
                style_id=style_other.id,
                cutting_received_pcs=999,
                created_at=at(3),
                updated_at=at(3),
            ),
            # Tailor jobs
            TailorJob(
                style_id=style_a.id,
                tailor_id=tailor_a.id,
                status="in_progress",
                issued_pcs=100,
                issue_date=at(2),
                created_at=created,
                updated_at=created,
            ),
            TailorJob(
                style_id=style_a.id,
                tailor_id=tailor_a.id,
                status="completed",
                issued_pcs=50,
                returned_pcs=45,
                rejected_pcs=5,
                issue_date=at(1),
                completed_date=at(4),
                created_at=created,
                updated_at=created,
            ),
            TailorJob(
                style_id=style_b.id,
                tailor_id=tailor_b.id,
                status="issued",
                issued_pcs=30,
                issue_date=at(5),
                created_at=created,
                updated_at=created,
            ),
            TailorJob(
                style_id=style_b.id,
                tailor_id=None,
                status="issued",
                issued_pcs=20,
                issue_date=at(6),
                created_at=created,
                updated_at=created,
            ),
            # Shipments
            Shipment(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                vendor_id=vendor_a.id,
                shipped_qty=40,
                invoice_value=Decimal("4000.00"),
                status="shipped",
                payment_status="pending",
                shipped_at=at(5),
                promised_date=at(3),
                created_at=created,
                updated_at=created,
            ),
            Shipment(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                vendor_id=vendor_a.id,
                shipped_qty=10,
                invoice_value=Decimal("1000.00"),
                status="delivered",
                payment_status="paid",
                shipped_at=at(6),
                promised_date=None,
                created_at=created,
                updated_at=created,
            ),
            Shipment(
                tenant_id=TENANT_ID,
                style_id=style_b.id,
                vendor_id=vendor_b.id,
                shipped_qty=20,
                invoice_value=Decimal("2000.00"),
                status="shipped",
                payment_status=None,
                shipped_at=at(6),
                promised_date=at(10),
                created_at=created,
                updated_at=created,
            ),
            # Tailor payments
            TailorPayment(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                tailor_id=tailor_a.id,
                amount=Decimal("500.00"),
                paid_at=at(4),
                created_at=created,
                updated_at=created,
            ),
            TailorPayment(
                tenant_id=TENANT_ID,
                style_id=style_b.id,
                tailor_id=tailor_b.id,
                amount=Decimal("300.00"),
                paid_at=at(7),
                created_at=created,
                updated_at=created,
            ),
            # Samples
            SampleVersion(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                status="approved",
                requested_at=at(2),
                submitted_at=at(4),
                created_at=at(2),
                updated_at=at(2),
            ),
            SampleVersion(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                status="requested",
                requested_at=at(3),
                created_at=at(3),
                updated_at=at(3),
            ),
            SampleVersion(
                tenant_id=TENANT_ID,
                style_id=style_b.id,
                status="rejected",
                submitted_at=at(6),
                created_at=at(5),
                updated_at=at(5),
            ),
            # QC
            QCInspection(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                result="passed",
                inspected_at=at(4),
                created_at=created,
                updated_at=created,
            ),
            QCInspection(
                tenant_id=TENANT_ID,
                style_id=style_a.id,
                result="failed",
                inspected_at=at(5),
                created_at=created,
                updated_at=created,
            ),
            QCInspection(
                tenant_id=TENANT_ID,
                style_id=style_b.id,
                result="passed",
                inspected_at=at(6),
                created_at=created,
                updated_at=created,
            ),
        ]
    )
    await db_session.commit()

    return SimpleNamespace(
        tenant_id=TENANT_ID,
        other_tenant_id=OTHER_TENANT_ID,
        vendor_a=vendor_a.id,
        vendor_b=vendor_b.id,
        vendor_other=vendor_other.id,
        style_a=style_a.id,
        style_b=style_b.id,
        style_other=style_other.id,
        tailor_a=tailor_a.id,
        tailor_b=tailor_b.id,
    )
