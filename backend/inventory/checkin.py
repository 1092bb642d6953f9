"""
Check-in — create a new InventoryItem under catalog tracking policy.

Required capture, evaluated against the catalog entry:
  requires_lot_tracking     → lot_number
  requires_serial_tracking  → serial_number
  expiration required       → sterility_expires_at

Expiration is required when the catalog asks for it explicitly, OR the item
must be sterile, OR it is an IMPLANT. The last two cannot be switched off by
the explicit flag. Every missing field is reported at once.
"""

import uuid
from datetime import date

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, ValidationError, ViolationCollector
from db.models import InventoryItem, ItemCatalog
from inventory.events import AvailabilityStatus, SterilityStatus
from inventory.gs1 import decode
from inventory.repository import CatalogRepository, InventoryRepository, LocationRepository

logger = structlog.get_logger()


class CheckInRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_id: uuid.UUID
    serial_number: str | None = None
    lot_number: str | None = None
    barcode: str | None = None
    location_id: uuid.UUID | None = None
    sterility_status: SterilityStatus | None = None
    sterility_expires_at: date | None = None


def expiration_required(catalog: ItemCatalog) -> bool:
    return bool(
        catalog.requires_expiration_tracking
        or catalog.requires_sterility
        or catalog.category == "IMPLANT"
    )


def catalog_rules(catalog: ItemCatalog) -> dict:
    return {
        "requires_lot_tracking": catalog.requires_lot_tracking,
        "requires_serial_tracking": catalog.requires_serial_tracking,
        "requires_expiration_tracking": catalog.requires_expiration_tracking,
        "requires_sterility": catalog.requires_sterility,
        "category": catalog.category,
        "expiration_required": expiration_required(catalog),
    }


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def missing_required_fields(catalog: ItemCatalog, request: CheckInRequest) -> list[str]:
    """Every required field the request leaves empty, in a fixed order."""
    missing = []
    if catalog.requires_lot_tracking and _blank(request.lot_number):
        missing.append("lot_number")
    if catalog.requires_serial_tracking and _blank(request.serial_number):
        missing.append("serial_number")
    if expiration_required(catalog) and request.sterility_expires_at is None:
        missing.append("sterility_expires_at")
    return missing


class CheckInService:
    def __init__(
        self,
        db: AsyncSession,
        items: InventoryRepository,
        catalog: CatalogRepository,
        locations: LocationRepository,
    ):
        self.db = db
        self.items = items
        self.catalog = catalog
        self.locations = locations

    @classmethod
    def for_session(cls, db: AsyncSession) -> "CheckInService":
        return cls(db, InventoryRepository(db), CatalogRepository(db), LocationRepository(db))

    async def check_in_item(self, facility_id: uuid.UUID, request: CheckInRequest) -> InventoryItem:
        catalog = await self.catalog.get(facility_id, request.catalog_id)
        if catalog is None or not catalog.active:
            raise NotFoundError("Catalog item not found or inactive", code="CATALOG_NOT_FOUND")

        missing = missing_required_fields(catalog, request)
        if missing:
            violations = ViolationCollector()
            for name in missing:
                violations.add("FIELD_REQUIRED", name, f"{name} is required by catalog tracking policy")
            logger.info(
                "checkin.rejected",
                facility_id=str(facility_id),
                catalog_id=str(catalog.catalog_id),
                missing_fields=missing,
            )
            raise ValidationError(
                "Required fields missing based on catalog tracking requirements",
                code="MISSING_REQUIRED_FIELDS",
                violations=violations.violations,
                extras={"missing_fields": missing, "catalog_rules": catalog_rules(catalog)},
            )

        if request.location_id is not None:
            if await self.locations.get_active(facility_id, request.location_id) is None:
                raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")

        barcode = None if _blank(request.barcode) else request.barcode.strip()
        if barcode is not None:
            existing = await self.items.find_by_barcode(facility_id, barcode)
            if existing is not None:
                self._conflict(facility_id, barcode, existing.item_id)

        if request.sterility_status is not None:
            sterility = request.sterility_status.value
        elif catalog.requires_sterility:
            sterility = SterilityStatus.STERILE.value
        else:
            sterility = SterilityStatus.NON_STERILE.value

        item = InventoryItem(
            item_id=uuid.uuid4(),
            facility_id=facility_id,
            catalog_id=catalog.catalog_id,
            serial_number=request.serial_number,
            lot_number=request.lot_number,
            barcode=barcode,
            location_id=request.location_id,
            sterility_status=sterility,
            sterility_expires_at=request.sterility_expires_at,
            availability_status=AvailabilityStatus.AVAILABLE.value,
        )
        if barcode is not None:
            decoded = decode(barcode)
            item.barcode_classification = decoded.classification.value
            if decoded.parsed is not None:
                item.barcode_gtin = decoded.parsed.gtin
                item.barcode_parsed_lot = decoded.parsed.lot
                item.barcode_parsed_serial = decoded.parsed.serial
                item.barcode_parsed_expiration = decoded.parsed.expiration

        self.items.add_item(item)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent check-in of the same barcode.
            await self.db.rollback()
            existing = await self.items.find_by_barcode(facility_id, barcode) if barcode else None
            if existing is None:
                raise
            self._conflict(facility_id, barcode, existing.item_id)

        logger.info(
            "checkin.created",
            facility_id=str(facility_id),
            item_id=str(item.item_id),
            catalog_id=str(catalog.catalog_id),
            barcode_classification=item.barcode_classification,
        )
        return await self.items.get_item(facility_id, item.item_id)

    @staticmethod
    def _conflict(facility_id: uuid.UUID, barcode: str, existing_id: uuid.UUID):
        logger.info(
            "checkin.barcode_conflict",
            facility_id=str(facility_id),
            barcode=barcode,
            existing_item_id=str(existing_id),
        )
        raise ConflictError(
            "Barcode already exists in this facility",
            code="BARCODE_CONFLICT",
            extras={"existing_item_id": str(existing_id)},
        )

    async def list_items(
        self,
        facility_id: uuid.UUID,
        catalog_id: uuid.UUID | None = None,
        location_id: uuid.UUID | None = None,
        availability_status: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ):
        return await self.items.list_items(
            facility_id,
            catalog_id=catalog_id,
            location_id=location_id,
            availability_status=availability_status,
            skip=skip,
            limit=limit,
        )

    async def get_item(self, facility_id: uuid.UUID, item_id: uuid.UUID) -> InventoryItem:
        item = await self.items.get_item(facility_id, item_id)
        if item is None:
            raise NotFoundError("Inventory item not found", code="INVENTORY_ITEM_NOT_FOUND")
        return item
