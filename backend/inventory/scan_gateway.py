"""
Device Scan Gateway — raw device payload → audit record + candidate.

Pipeline:
  1. Resolve the device (all-zero id = the facility's virtual keyboard wedge)
  2. Look up a candidate item by barcode, then serial
  3. Decode the payload as GS1 regardless of the item match
  4. No item but a GTIN → suggest a catalog entry
  5. No item and nothing decoded → symbology-specific guidance
  6. Append a DeviceEvent describing the outcome
  7. Return everything for a human to confirm

A scan never writes an InventoryEvent. Confirming a candidate is a separate
call to the event store (POST /inventory/events with device_event_id), made
by a person. Do not auto-confirm matches here, however confident.

Agent: full-stack-engineer
Skill: fastapi
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models import DeviceEvent, InventoryItem, ItemCatalog
from inventory.events import as_naive_utc
from inventory.gs1 import BarcodeClassification, GS1Data, decode, scan_guidance
from inventory.repository import (
    KEYBOARD_WEDGE_DEVICE_ID,
    CatalogRepository,
    DeviceRepository,
    InventoryRepository,
)
from inventory.resolver import ItemResolver

logger = structlog.get_logger()

NO_MATCH_ERROR = "No matching inventory item found"


@dataclass
class ScanResult:
    device_event_id: uuid.UUID
    processed: bool
    processed_item_id: uuid.UUID | None
    candidate: InventoryItem | None
    gs1_data: GS1Data | None
    catalog_match: ItemCatalog | None
    barcode_classification: BarcodeClassification
    guidance: str | None = None
    error: str | None = None
    decode_errors: list[str] = field(default_factory=list)


class ScanGateway:
    def __init__(self, db: AsyncSession, devices: DeviceRepository, resolver: ItemResolver):
        self.db = db
        self.devices = devices
        self.resolver = resolver

    @classmethod
    def for_session(cls, db: AsyncSession) -> "ScanGateway":
        return cls(
            db,
            DeviceRepository(db),
            ItemResolver(InventoryRepository(db), CatalogRepository(db)),
        )

    async def handle_scan(
        self,
        facility_id: uuid.UUID,
        raw_value: str,
        device_id: uuid.UUID,
        payload_type: str = "scan",
        device_type: str = "barcode",
        occurred_at: datetime | None = None,
    ) -> ScanResult:
        try:
            if device_id == KEYBOARD_WEDGE_DEVICE_ID:
                device = await self.devices.get_or_create_keyboard_wedge(facility_id)
            else:
                device = await self.devices.get_active(facility_id, device_id)
            if device is None:
                raise NotFoundError("Device not found or inactive", code="DEVICE_NOT_FOUND")

            # Scanners append CR/LF; the audit row keeps the bytes as received.
            value = raw_value.strip()
            candidate = await self.resolver.find_candidate(facility_id, value)
            decoded = decode(value)

            catalog_match = None
            guidance = None
            if candidate is None:
                if decoded.parsed is not None:
                    catalog_match = await self.resolver.suggest_catalog(facility_id, decoded)
                else:
                    guidance = scan_guidance(decoded.classification)

            error = None if candidate is not None else NO_MATCH_ERROR
            device_event = DeviceEvent(
                device_event_id=uuid.uuid4(),
                facility_id=facility_id,
                device_id=device.device_id,
                device_type=device_type,
                payload_type=payload_type,
                raw_value=raw_value,
                processed_item_id=candidate.item_id if candidate is not None else None,
                processed=candidate is not None,
                processing_error=error,
                occurred_at=as_naive_utc(occurred_at),
            )
            self.devices.append_device_event(device_event)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if candidate is not None:
            logger.info(
                "device_scan.processed",
                facility_id=str(facility_id),
                device_event_id=str(device_event.device_event_id),
                item_id=str(candidate.item_id),
            )
        else:
            logger.info(
                "device_scan.unmatched",
                facility_id=str(facility_id),
                device_event_id=str(device_event.device_event_id),
                classification=decoded.classification.value,
                gtin=decoded.parsed.gtin if decoded.parsed else None,
                catalog_match=str(catalog_match.catalog_id) if catalog_match else None,
            )

        return ScanResult(
            device_event_id=device_event.device_event_id,
            processed=candidate is not None,
            processed_item_id=candidate.item_id if candidate is not None else None,
            candidate=candidate,
            gs1_data=decoded.parsed,
            catalog_match=catalog_match,
            barcode_classification=decoded.classification,
            guidance=guidance,
            error=error,
            decode_errors=list(decoded.errors),
        )

    async def list_devices(self, facility_id: uuid.UUID):
        """Active devices for the facility, ordered by name."""
        return await self.devices.list_active(facility_id)
