"""Pytest configuration and fixtures for Waybill tests.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema.  Redis caching and the reconciliation scheduler are switched off
through the environment before the app is imported.
"""

import os

os.environ["CACHE_ENABLED"] = "false"
os.environ["RECONCILIATION_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from waybill.auth.jwt import create_access_token  # noqa: E402
from waybill.auth.permissions import DISPATCHER_PERMISSIONS, DRIVER_PERMISSIONS  # noqa: E402
from waybill.database import Base, get_db  # noqa: E402
from waybill.main import app  # noqa: E402
from waybill.models import Carrier, Driver, Shipment, TransportRoute, Vehicle  # noqa: E402
from waybill.models.status import ManifestStatus  # noqa: E402
from waybill.schemas.manifest import ManifestCreate  # noqa: E402
from waybill.services.assignment import add_shipments  # noqa: E402
from waybill.services.manifests import change_status, create_manifest  # noqa: E402

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine with SAVEPOINT support and the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so nested transactions work on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests.  Uncommitted work is discarded."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app; each request gets its own committed session."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def fleet(db: AsyncSession) -> SimpleNamespace:
    """Carrier, vehicle, driver and route for tenant A (plus one inactive vehicle)."""
    carrier = Carrier(tenant_id=TENANT_A, name="Own Fleet", code="OWN")
    vehicle = Vehicle(tenant_id=TENANT_A, plate="ABC-123", vehicle_type="van", brand="Ford")
    retired = Vehicle(tenant_id=TENANT_A, plate="OLD-001", vehicle_type="truck", is_active=False)
    driver = Driver(tenant_id=TENANT_A, full_name="Dana Driver", phone="555-0100")
    route = TransportRoute(tenant_id=TENANT_A, name="North Loop", code="NORTH-1")
    db.add_all([carrier, vehicle, retired, driver, route])
    await db.commit()
    return SimpleNamespace(carrier=carrier, vehicle=vehicle, retired=retired, driver=driver, route=route)


@pytest_asyncio.fixture
async def shipments(db: AsyncSession) -> list[Shipment]:
    """Three assignable shipments for tenant A; one has no weight/packages."""
    rows = [
        Shipment(
            tenant_id=TENANT_A, shipment_number="SHP-0001", tracking_number="TRK-0001",
            delivery_city="Springfield", weight_kg=10.5, package_count=2,
            cod_amount=Decimal("100.00"), status="received",
        ),
        Shipment(
            tenant_id=TENANT_A, shipment_number="SHP-0002", tracking_number="TRK-0002",
            delivery_city="Shelbyville", weight_kg=4.25, package_count=1,
            cod_amount=None, status="received",
        ),
        Shipment(
            tenant_id=TENANT_A, shipment_number="SHP-0003", tracking_number="TRK-0003",
            delivery_city="Springfield", weight_kg=None, package_count=None,
            cod_amount=Decimal("49.99"), status="pending",
        ),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


@pytest.fixture
def build_manifest(db: AsyncSession, fleet: SimpleNamespace):
    """Factory: tenant-A manifest with the given shipments, advanced to ``status``."""
    paths = {
        ManifestStatus.DRAFT: [],
        ManifestStatus.CONFIRMED: [ManifestStatus.CONFIRMED],
        ManifestStatus.IN_PROGRESS: [ManifestStatus.CONFIRMED, ManifestStatus.IN_PROGRESS],
    }

    async def _build(shipment_ids=(), status: ManifestStatus = ManifestStatus.DRAFT):
        manifest = await create_manifest(
            db, TENANT_A,
            ManifestCreate(
                manifest_date=date(2026, 3, 2),
                carrier_id=fleet.carrier.id,
                vehicle_id=fleet.vehicle.id,
                driver_id=fleet.driver.id,
            ),
            actor_id="user-1",
        )
        if shipment_ids:
            manifest = await add_shipments(db, TENANT_A, manifest.id, list(shipment_ids))
        for step in paths[status]:
            manifest = await change_status(db, TENANT_A, manifest.id, step)
        return manifest

    return _build


# ── Auth Fixtures ────────────────────────────────────────────────

def _headers(tenant_id: str | None, permissions: list[str], actor_type: str = "user") -> dict:
    token = create_access_token(
        actor_id="user-1" if actor_type == "user" else "driver-1",
        tenant_id=tenant_id,
        permissions=permissions,
        actor_type=actor_type,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict:
    """Dispatcher token for tenant A."""
    return _headers(TENANT_A, DISPATCHER_PERMISSIONS)


@pytest.fixture
def driver_headers() -> dict:
    """Driver token for tenant A (read + delivery only)."""
    return _headers(TENANT_A, DRIVER_PERMISSIONS, actor_type="driver")


@pytest.fixture
def tenant_b_headers() -> dict:
    return _headers(TENANT_B, ["*"])


@pytest.fixture
def no_tenant_headers() -> dict:
    return _headers(None, ["*"])


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Service tests against the test database")
    config.addinivalue_line("markers", "api: HTTP tests through the ASGI app")
    config.addinivalue_line("markers", "cache: Redis caching tests")
