"""
Test Configuration — Fixtures for async DB, test client, and seeded facility data.

Each test gets a fresh in-memory SQLite database built from the models.
Services commit and roll back for real, so atomicity can be asserted
directly against the tables.
"""

import uuid
from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  (registers tables on Base.metadata)
from api.deps import get_current_user, get_db, get_tenant_db
from api.main import app
from core import config as config_module
from db.session import Base

# In-memory SQLite, one connection shared through StaticPool so the
# schema survives across sessions within a test.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FACILITY_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_FACILITY_ID = uuid.UUID("00000000-0000-0000-0000-000000000009")
USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

GTIN = "00812345678903"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    yield
    config_module.get_settings.cache_clear()


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": str(USER_ID),
        "email": "nurse@asc.test",
        "facility_id": str(FACILITY_ID),
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    async def override_get_tenant_db():
        """Skip set_config (SQLite doesn't support it), return session directly."""
        return test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_tenant_db] = override_get_tenant_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Seed two facilities with locations, vendors, catalog, devices and items."""
    from db.models import (
        CatalogIdentifier,
        Device,
        Facility,
        InventoryItem,
        ItemCatalog,
        Location,
        Vendor,
    )

    test_db.add_all(
        [
            Facility(facility_id=FACILITY_ID, name="Lakeside Surgery Center"),
            Facility(facility_id=OTHER_FACILITY_ID, name="Riverside ASC"),
        ]
    )
    await test_db.flush()

    or_1 = Location(facility_id=FACILITY_ID, name="OR 1")
    sterile_core = Location(facility_id=FACILITY_ID, name="Sterile Core")
    closed_room = Location(facility_id=FACILITY_ID, name="Closed Room", active=False)
    other_location = Location(facility_id=OTHER_FACILITY_ID, name="OR 1")
    test_db.add_all([or_1, sterile_core, closed_room, other_location])

    vendor = Vendor(facility_id=FACILITY_ID, name="Acme Orthopedics", vendor_type="MANUFACTURER")
    inactive_vendor = Vendor(
        facility_id=FACILITY_ID, name="Defunct Supply", vendor_type="DISTRIBUTOR", is_active=False
    )
    other_vendor = Vendor(facility_id=OTHER_FACILITY_ID, name="Acme Orthopedics", vendor_type="MANUFACTURER")
    test_db.add_all([vendor, inactive_vendor, other_vendor])

    tracked = ItemCatalog(
        facility_id=FACILITY_ID,
        name="Hip Stem Size 4",
        category="IMPLANT",
        requires_sterility=True,
        requires_lot_tracking=True,
        requires_serial_tracking=True,
        requires_expiration_tracking=True,
        criticality="CRITICAL",
        unit_cost_cents=125000,
    )
    implant_no_flag = ItemCatalog(
        facility_id=FACILITY_ID,
        name="Bone Screw 3.5mm",
        category="IMPLANT",
        requires_sterility=False,
        requires_expiration_tracking=False,
        criticality="IMPORTANT",
    )
    instrument = ItemCatalog(
        facility_id=FACILITY_ID,
        name="Retractor Set",
        category="INSTRUMENT",
        requires_sterility=False,
        criticality="ROUTINE",
        unit_cost_cents=4500,
    )
    retired = ItemCatalog(
        facility_id=FACILITY_ID,
        name="Discontinued Drill",
        category="INSTRUMENT",
        requires_sterility=False,
        active=False,
    )
    other_catalog = ItemCatalog(facility_id=OTHER_FACILITY_ID, name="Hip Stem Size 4", category="IMPLANT")
    test_db.add_all([tracked, implant_no_flag, instrument, retired, other_catalog])
    await test_db.flush()

    test_db.add(
        CatalogIdentifier(
            facility_id=FACILITY_ID,
            catalog_id=tracked.catalog_id,
            identifier_type="GTIN",
            raw_value=GTIN,
            classification="gs1-datamatrix",
        )
    )

    scanner = Device(facility_id=FACILITY_ID, name="Core Scanner", device_type="barcode", location_id=sterile_core.location_id)
    disabled_scanner = Device(facility_id=FACILITY_ID, name="Broken Scanner", device_type="barcode", active=False)
    other_scanner = Device(facility_id=OTHER_FACILITY_ID, name="Riverside Scanner", device_type="barcode")
    test_db.add_all([scanner, disabled_scanner, other_scanner])

    item_a = InventoryItem(
        facility_id=FACILITY_ID,
        catalog_id=tracked.catalog_id,
        barcode="BC-A",
        serial_number="SN-A",
        lot_number="LOT-A",
        location_id=or_1.location_id,
        sterility_status="STERILE",
        sterility_expires_at=date.today() + timedelta(days=365),
        availability_status="AVAILABLE",
    )
    item_b = InventoryItem(
        facility_id=FACILITY_ID,
        catalog_id=instrument.catalog_id,
        serial_number="SN-B",
        sterility_status="NON_STERILE",
        availability_status="AVAILABLE",
    )
    item_c = InventoryItem(
        facility_id=FACILITY_ID,
        catalog_id=instrument.catalog_id,
        barcode="BC-C",
        location_id=sterile_core.location_id,
        sterility_status="NON_STERILE",
        availability_status="AVAILABLE",
    )
    other_item = InventoryItem(
        facility_id=OTHER_FACILITY_ID,
        catalog_id=other_catalog.catalog_id,
        barcode="BC-X",
        sterility_status="STERILE",
        availability_status="AVAILABLE",
    )
    test_db.add_all([item_a, item_b, item_c, other_item])
    await test_db.flush()

    await test_db.commit()

    return {
        "facility_id": FACILITY_ID,
        "other_facility_id": OTHER_FACILITY_ID,
        "user_id": USER_ID,
        "or_1": or_1,
        "sterile_core": sterile_core,
        "closed_room": closed_room,
        "other_location": other_location,
        "vendor": vendor,
        "inactive_vendor": inactive_vendor,
        "other_vendor": other_vendor,
        "tracked": tracked,
        "implant_no_flag": implant_no_flag,
        "instrument": instrument,
        "retired": retired,
        "scanner": scanner,
        "disabled_scanner": disabled_scanner,
        "other_scanner": other_scanner,
        "item_a": item_a,
        "item_b": item_b,
        "item_c": item_c,
        "other_item": other_item,
    }
