"""
State Projector — the inventory item state machine.

apply_event(state, event) -> state' is a pure, deterministic function over
the closed event-type set. The InventoryItem row is only ever a cache of
folding apply_event over the item's event log, so nothing here reads the
clock or the database.

  RECEIVED          sterility_status given → set it, availability := AVAILABLE
  VERIFIED          last_verified_at/by := occurred_at / performer
  LOCATION_CHANGED  location_id := event.location_id when present
  RESERVED          availability := RESERVED, reserved_for_case_id := case
  RELEASED          availability := AVAILABLE, reservation cleared
  CONSUMED          availability := UNAVAILABLE, reservation cleared
  EXPIRED           sterility_status := EXPIRED
  RETURNED/ADJUSTED audit only, no state change
  anything else     no-op, logged (forward compatibility)
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog

from inventory.events import (
    AdjustedEvent,
    AvailabilityStatus,
    ConsumedEvent,
    ExpiredEvent,
    LocationChangedEvent,
    NewInventoryEvent,
    ReceivedEvent,
    ReleasedEvent,
    ReservedEvent,
    ReturnedEvent,
    SterilityStatus,
    VerifiedEvent,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ItemState:
    """The mutable part of an InventoryItem, as a value."""

    location_id: UUID | None
    sterility_status: str
    availability_status: str
    reserved_for_case_id: UUID | None = None
    last_verified_at: datetime | None = None
    last_verified_by_user_id: UUID | None = None

    @classmethod
    def from_item(cls, item) -> "ItemState":
        return cls(
            location_id=item.location_id,
            sterility_status=item.sterility_status,
            availability_status=item.availability_status,
            reserved_for_case_id=item.reserved_for_case_id,
            last_verified_at=item.last_verified_at,
            last_verified_by_user_id=item.last_verified_by_user_id,
        )

    def write_to(self, item) -> None:
        for f in dataclasses.fields(self):
            setattr(item, f.name, getattr(self, f.name))


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Placeholder for a stored event type this release does not know."""

    event_type: str


@dataclass(frozen=True)
class AppliedEvent:
    """An event payload plus the write-time facts the projector needs."""

    payload: NewInventoryEvent | UnrecognizedEvent
    performed_by_user_id: UUID
    occurred_at: datetime


def apply_event(state: ItemState, applied: AppliedEvent) -> ItemState:
    """Compute the next item state. Total over every payload type."""
    event = applied.payload

    if isinstance(event, VerifiedEvent):
        return dataclasses.replace(
            state,
            last_verified_at=applied.occurred_at,
            last_verified_by_user_id=applied.performed_by_user_id,
        )
    elif isinstance(event, LocationChangedEvent):
        if event.location_id is None:
            return state
        return dataclasses.replace(state, location_id=event.location_id)
    elif isinstance(event, ReservedEvent):
        return dataclasses.replace(
            state,
            availability_status=AvailabilityStatus.RESERVED.value,
            reserved_for_case_id=event.case_id,
        )
    elif isinstance(event, ReleasedEvent):
        return dataclasses.replace(
            state,
            availability_status=AvailabilityStatus.AVAILABLE.value,
            reserved_for_case_id=None,
        )
    elif isinstance(event, ConsumedEvent):
        return dataclasses.replace(
            state,
            availability_status=AvailabilityStatus.UNAVAILABLE.value,
            reserved_for_case_id=None,
        )
    elif isinstance(event, ExpiredEvent):
        return dataclasses.replace(state, sterility_status=SterilityStatus.EXPIRED.value)
    elif isinstance(event, ReceivedEvent):
        if event.sterility_status is None:
            return state
        return dataclasses.replace(
            state,
            sterility_status=SterilityStatus(event.sterility_status).value,
            availability_status=AvailabilityStatus.AVAILABLE.value,
        )
    elif isinstance(event, (ReturnedEvent, AdjustedEvent)):
        return state

    logger.warning(
        "projector.unrecognized_event",
        event_type=getattr(event, "event_type", type(event).__name__),
    )
    return state


def replay(initial: ItemState, events: Iterable[AppliedEvent]) -> ItemState:
    """Fold apply_event over events in the given (occurrence) order."""
    state = initial
    for applied in events:
        state = apply_event(state, applied)
    return state


_PAYLOAD_FIELDS = {
    "RECEIVED": (ReceivedEvent, ("sterility_status",)),
    "VERIFIED": (VerifiedEvent, ()),
    "LOCATION_CHANGED": (LocationChangedEvent, ("location_id",)),
    "RESERVED": (ReservedEvent, ("case_id",)),
    "RELEASED": (ReleasedEvent, ("case_id",)),
    "CONSUMED": (ConsumedEvent, ("case_id",)),
    "EXPIRED": (ExpiredEvent, ()),
    "RETURNED": (ReturnedEvent, ()),
    "ADJUSTED": (AdjustedEvent, ()),
}


def applied_from_row(row) -> AppliedEvent:
    """
    Rebuild an AppliedEvent from a stored inventory_events row.

    Stored rows are already accepted history, so they are not re-validated.
    """
    entry = _PAYLOAD_FIELDS.get(row.event_type)
    if entry is None:
        payload: NewInventoryEvent | UnrecognizedEvent = UnrecognizedEvent(event_type=row.event_type)
    else:
        cls, names = entry
        payload = cls.model_construct(
            inventory_item_id=row.inventory_item_id,
            occurred_at=row.occurred_at,
            **{name: getattr(row, name) for name in names},
        )
    return AppliedEvent(
        payload=payload,
        performed_by_user_id=row.performed_by_user_id,
        occurred_at=row.occurred_at,
    )
