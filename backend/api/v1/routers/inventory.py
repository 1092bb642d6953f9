"""
Inventory Router — item check-in, event recording, history, risk queue.

All routes are facility-scoped by the caller's token. Domain errors raised by
the services are translated to 404 / 400 / 409 by the handler in api.main.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, RootModel
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import compute_risk_queue
from api.deps import CallerContext, get_caller, get_tenant_db
from core.config import get_settings
from inventory.checkin import CheckInRequest, CheckInService
from inventory.event_store import EventStore
from inventory.events import AvailabilityStatus, NewInventoryEvent
from inventory.repository import InventoryRepository

settings = get_settings()

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class InventoryItemResponse(BaseModel):
    item_id: UUID
    facility_id: UUID
    catalog_id: UUID
    catalog_name: str | None = None
    serial_number: str | None
    lot_number: str | None
    barcode: str | None
    barcode_classification: str | None
    barcode_gtin: str | None
    barcode_parsed_lot: str | None
    barcode_parsed_serial: str | None
    barcode_parsed_expiration: date | None
    location_id: UUID | None
    sterility_status: str
    sterility_expires_at: date | None
    availability_status: str
    reserved_for_case_id: UUID | None
    last_verified_at: datetime | None
    last_verified_by_user_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def item_response(item) -> InventoryItemResponse:
    response = InventoryItemResponse.model_validate(item)
    response.catalog_name = item.catalog.name if item.catalog is not None else None
    return response


class InventoryEventResponse(BaseModel):
    event_id: UUID
    facility_id: UUID
    inventory_item_id: UUID
    event_type: str
    case_id: UUID | None
    location_id: UUID | None
    previous_location_id: UUID | None
    sterility_status: str | None
    notes: str | None
    performed_by_user_id: UUID
    device_event_id: UUID | None
    occurred_at: datetime
    cost_snapshot_cents: int | None
    cost_override_cents: int | None
    cost_override_reason: str | None
    cost_override_note: str | None
    provided_by_vendor_id: UUID | None
    provided_by_rep_name: str | None
    is_gratis: bool
    gratis_reason: str | None

    model_config = {"from_attributes": True}


class RecordEventRequest(RootModel[NewInventoryEvent]):
    pass


class RecordEventResponse(BaseModel):
    item: InventoryItemResponse
    event: InventoryEventResponse


class BulkEventsRequest(BaseModel):
    events: list[NewInventoryEvent] = Field(min_length=1, max_length=settings.bulk_event_max)


class BulkEventsResponse(BaseModel):
    success: bool
    count: int
    events: list[InventoryEventResponse]


class RiskItemResponse(BaseModel):
    rule: str
    severity: str
    facility_id: UUID
    catalog_id: UUID
    catalog_name: str
    inventory_item_id: UUID
    identifier: str | None
    days_to_expire: int | None
    expires_at: date | None
    missing_fields: list[str]
    explain: str
    debug: dict

    model_config = {"from_attributes": True}


# ─── Events ─────────────────────────────────────────────────────────────────


@router.post("/events", response_model=RecordEventResponse, status_code=201)
async def record_event(
    body: RecordEventRequest,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Append one inventory event and return the updated item."""
    store = EventStore.for_session(db)
    item, event = await store.record_event(caller.facility_id, caller.user_id, body.root)
    return RecordEventResponse(
        item=item_response(item),
        event=InventoryEventResponse.model_validate(event),
    )


@router.post("/events/bulk", response_model=BulkEventsResponse, status_code=201)
async def record_events_bulk(
    body: BulkEventsRequest,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Append a batch of events, all-or-nothing, in input order."""
    store = EventStore.for_session(db)
    events = await store.record_events(caller.facility_id, caller.user_id, body.events)
    return BulkEventsResponse(
        success=True,
        count=len(events),
        events=[InventoryEventResponse.model_validate(e) for e in events],
    )


# ─── Items ──────────────────────────────────────────────────────────────────


@router.get("/items", response_model=list[InventoryItemResponse])
async def list_items(
    catalog_id: UUID | None = None,
    location_id: UUID | None = None,
    status: AvailabilityStatus | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """List inventory items with optional filters."""
    service = CheckInService.for_session(db)
    items = await service.list_items(
        caller.facility_id,
        catalog_id=catalog_id,
        location_id=location_id,
        availability_status=status.value if status else None,
        skip=skip,
        limit=limit,
    )
    return [item_response(item) for item in items]


@router.post("/items", response_model=InventoryItemResponse, status_code=201)
async def check_in_item(
    body: CheckInRequest,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Check in a new physical item under its catalog tracking policy."""
    service = CheckInService.for_session(db)
    item = await service.check_in_item(caller.facility_id, body)
    return item_response(item)


@router.get("/items/{item_id}", response_model=InventoryItemResponse)
async def get_item(
    item_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    service = CheckInService.for_session(db)
    return item_response(await service.get_item(caller.facility_id, item_id))


@router.get("/items/{item_id}/history", response_model=list[InventoryEventResponse])
async def get_item_history(
    item_id: UUID,
    limit: int | None = Query(None, ge=1, le=500),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Event history for one item, newest first."""
    store = EventStore.for_session(db)
    events = await store.item_history(caller.facility_id, item_id, limit=limit)
    return [InventoryEventResponse.model_validate(e) for e in events]


# ─── Risk queue ─────────────────────────────────────────────────────────────


@router.get("/risk-queue", response_model=list[RiskItemResponse])
async def get_risk_queue(
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Ranked alarms over current item state (advisory, recomputed on read)."""
    queue = await compute_risk_queue(caller.facility_id, InventoryRepository(db))
    return [RiskItemResponse.model_validate(r) for r in queue]
