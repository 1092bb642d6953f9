"""
Inventory Repositories — facility-scoped data access for the inventory core.

Each repository wraps one AsyncSession and is constructed per request (or per
worker task), then passed explicitly into the services that need it. Every
lookup takes facility_id, so a row from another facility is indistinguishable
from a missing row.

Agent: data-engineer
Skill: postgresql
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import (
    CatalogIdentifier,
    Device,
    DeviceEvent,
    Facility,
    InventoryEvent,
    InventoryItem,
    ItemCatalog,
    Location,
    Vendor,
)

KEYBOARD_WEDGE_DEVICE_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")
KEYBOARD_WEDGE_DEVICE_NAME = "Keyboard Wedge (Virtual)"


class InventoryRepository:
    """Items and their append-only event log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_item(self, facility_id: uuid.UUID, item_id: uuid.UUID, *, for_update: bool = False):
        query = (
            select(InventoryItem)
            .options(selectinload(InventoryItem.catalog), selectinload(InventoryItem.location))
            .where(InventoryItem.facility_id == facility_id, InventoryItem.item_id == item_id)
        )
        query = query.execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_items(self, facility_id: uuid.UUID, item_ids: list[uuid.UUID], *, for_update: bool = False):
        """Fetch several items at once, keyed by item_id."""
        if not item_ids:
            return {}
        query = (
            select(InventoryItem)
            .options(selectinload(InventoryItem.catalog))
            .where(InventoryItem.facility_id == facility_id, InventoryItem.item_id.in_(item_ids))
        )
        query = query.execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return {item.item_id: item for item in result.scalars().all()}

    async def find_by_barcode(self, facility_id: uuid.UUID, barcode: str):
        result = await self.db.execute(
            select(InventoryItem)
            .options(selectinload(InventoryItem.catalog), selectinload(InventoryItem.location))
            .where(InventoryItem.facility_id == facility_id, InventoryItem.barcode == barcode)
        )
        return result.scalar_one_or_none()

    async def find_by_serial(self, facility_id: uuid.UUID, serial_number: str):
        # Serials are only unique per catalog entry; take the oldest match.
        result = await self.db.execute(
            select(InventoryItem)
            .options(selectinload(InventoryItem.catalog), selectinload(InventoryItem.location))
            .where(InventoryItem.facility_id == facility_id, InventoryItem.serial_number == serial_number)
            .order_by(InventoryItem.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_items(
        self,
        facility_id: uuid.UUID,
        catalog_id: uuid.UUID | None = None,
        location_id: uuid.UUID | None = None,
        availability_status: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ):
        query = (
            select(InventoryItem)
            .options(selectinload(InventoryItem.catalog), selectinload(InventoryItem.location))
            .where(InventoryItem.facility_id == facility_id)
        )
        if catalog_id:
            query = query.where(InventoryItem.catalog_id == catalog_id)
        if location_id:
            query = query.where(InventoryItem.location_id == location_id)
        if availability_status:
            query = query.where(InventoryItem.availability_status == availability_status)
        query = query.order_by(InventoryItem.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def items_with_catalog(self, facility_id: uuid.UUID):
        """Single bulk read of in-scope items joined to an active catalog entry."""
        result = await self.db.execute(
            select(InventoryItem, ItemCatalog)
            .join(ItemCatalog, ItemCatalog.catalog_id == InventoryItem.catalog_id)
            .where(
                InventoryItem.facility_id == facility_id,
                InventoryItem.availability_status != "UNAVAILABLE",
                ItemCatalog.active.is_(True),
            )
        )
        return result.all()

    async def facility_timezone(self, facility_id: uuid.UUID) -> str | None:
        result = await self.db.execute(select(Facility.timezone).where(Facility.facility_id == facility_id))
        return result.scalar_one_or_none()

    def add_item(self, item: InventoryItem) -> None:
        self.db.add(item)

    def append_event(self, event: InventoryEvent) -> None:
        self.db.add(event)

    async def events_for_item(
        self, facility_id: uuid.UUID, item_id: uuid.UUID, *, newest_first: bool = True, limit: int | None = None
    ):
        order = (
            (InventoryEvent.occurred_at.desc(), InventoryEvent.created_at.desc())
            if newest_first
            else (InventoryEvent.occurred_at, InventoryEvent.created_at)
        )
        query = (
            select(InventoryEvent)
            .where(InventoryEvent.facility_id == facility_id, InventoryEvent.inventory_item_id == item_id)
            .order_by(*order)
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def count_events(self, facility_id: uuid.UUID | None = None) -> int:
        query = select(func.count()).select_from(InventoryEvent)
        if facility_id:
            query = query.where(InventoryEvent.facility_id == facility_id)
        result = await self.db.execute(query)
        return result.scalar_one()


class CatalogRepository:
    """Read-only access to catalog policy and catalog identifiers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, facility_id: uuid.UUID, catalog_id: uuid.UUID):
        result = await self.db.execute(
            select(ItemCatalog).where(ItemCatalog.facility_id == facility_id, ItemCatalog.catalog_id == catalog_id)
        )
        return result.scalar_one_or_none()

    async def find_by_gtin(self, facility_id: uuid.UUID, gtin: str):
        result = await self.db.execute(
            select(ItemCatalog)
            .join(CatalogIdentifier, CatalogIdentifier.catalog_id == ItemCatalog.catalog_id)
            .where(
                CatalogIdentifier.facility_id == facility_id,
                CatalogIdentifier.identifier_type == "GTIN",
                CatalogIdentifier.raw_value == gtin,
                ItemCatalog.active.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()


class LocationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active(self, facility_id: uuid.UUID, location_id: uuid.UUID):
        result = await self.db.execute(
            select(Location).where(
                Location.facility_id == facility_id,
                Location.location_id == location_id,
                Location.active.is_(True),
            )
        )
        return result.scalar_one_or_none()


class VendorRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, facility_id: uuid.UUID, vendor_id: uuid.UUID):
        result = await self.db.execute(
            select(Vendor).where(Vendor.facility_id == facility_id, Vendor.vendor_id == vendor_id)
        )
        return result.scalar_one_or_none()


class DeviceRepository:
    """Registered devices and the raw device-event audit log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active(self, facility_id: uuid.UUID, device_id: uuid.UUID):
        result = await self.db.execute(
            select(Device).where(
                Device.facility_id == facility_id,
                Device.device_id == device_id,
                Device.active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_keyboard_wedge(self, facility_id: uuid.UUID) -> Device | None:
        """The facility's virtual keyboard-wedge device, materialised on first use.

        Returns None when the wedge has been deactivated.
        """
        result = await self.db.execute(
            select(Device)
            .where(Device.facility_id == facility_id, Device.is_virtual.is_(True))
            .order_by(Device.created_at)
            .limit(1)
        )
        device = result.scalar_one_or_none()
        if device is None:
            device = Device(
                facility_id=facility_id,
                name=KEYBOARD_WEDGE_DEVICE_NAME,
                device_type="barcode",
                is_virtual=True,
                active=True,
            )
            self.db.add(device)
            await self.db.flush()
        elif not device.active:
            return None
        return device

    async def list_active(self, facility_id: uuid.UUID):
        result = await self.db.execute(
            select(Device)
            .where(Device.facility_id == facility_id, Device.active.is_(True))
            .order_by(Device.name)
        )
        return result.scalars().all()

    def append_device_event(self, event: DeviceEvent) -> None:
        self.db.add(event)

