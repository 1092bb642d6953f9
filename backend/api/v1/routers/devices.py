"""
Device Router — raw scanner input and the device registry.

POST /device-events resolves a scan to a candidate for a human to confirm.
It never records an inventory event; the UI does that afterwards through
POST /inventory/events, passing device_event_id back.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import CallerContext, get_caller, get_tenant_db
from api.v1.routers.inventory import InventoryItemResponse, item_response
from inventory.scan_gateway import ScanGateway

router = APIRouter(prefix="/api/v1/inventory", tags=["devices"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class DeviceEventRequest(BaseModel):
    device_id: UUID
    device_type: Literal["barcode", "rfid", "nfc", "other"] = "barcode"
    payload_type: Literal["scan", "presence", "input"] = "scan"
    raw_value: str = Field(min_length=1, max_length=4096)
    occurred_at: datetime | None = None


class CatalogMatch(BaseModel):
    catalog_id: UUID
    catalog_name: str


class GS1DataResponse(BaseModel):
    gtin: str
    lot: str | None
    expiration: str | None
    serial: str | None


class DeviceEventResponse(BaseModel):
    device_event_id: UUID
    processed: bool
    processed_item_id: UUID | None
    candidate: InventoryItemResponse | None
    gs1_data: GS1DataResponse | None
    catalog_match: CatalogMatch | None
    barcode_classification: str
    guidance: str | None
    error: str | None
    gs1_errors: list[str]


class DeviceResponse(BaseModel):
    device_id: UUID
    name: str
    device_type: str
    location_id: UUID | None
    active: bool
    is_virtual: bool

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/device-events", response_model=DeviceEventResponse, status_code=201)
async def receive_device_event(
    body: DeviceEventRequest,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Record a raw scan and return the candidate item / catalog suggestion."""
    gateway = ScanGateway.for_session(db)
    result = await gateway.handle_scan(
        caller.facility_id,
        raw_value=body.raw_value,
        device_id=body.device_id,
        payload_type=body.payload_type,
        device_type=body.device_type,
        occurred_at=body.occurred_at,
    )
    return DeviceEventResponse(
        device_event_id=result.device_event_id,
        processed=result.processed,
        processed_item_id=result.processed_item_id,
        candidate=item_response(result.candidate) if result.candidate is not None else None,
        gs1_data=GS1DataResponse(**result.gs1_data.as_dict()) if result.gs1_data is not None else None,
        catalog_match=(
            CatalogMatch(catalog_id=result.catalog_match.catalog_id, catalog_name=result.catalog_match.name)
            if result.catalog_match is not None
            else None
        ),
        barcode_classification=result.barcode_classification.value,
        guidance=result.guidance,
        error=result.error,
        gs1_errors=result.decode_errors,
    )


@router.get("/devices", response_model=list[DeviceResponse])
async def list_devices(
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Active registered devices for the caller's facility."""
    gateway = ScanGateway.for_session(db)
    return await gateway.list_devices(caller.facility_id)
