"""
Inventory event payloads — a tagged union over event_type.

Each variant only declares the fields its event type actually uses and
forbids everything else, so "field present but ignored" payloads are
rejected at the boundary rather than silently dropped by the projector.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EventType(str, Enum):
    RECEIVED = "RECEIVED"
    VERIFIED = "VERIFIED"
    LOCATION_CHANGED = "LOCATION_CHANGED"
    RESERVED = "RESERVED"
    RELEASED = "RELEASED"
    CONSUMED = "CONSUMED"
    EXPIRED = "EXPIRED"
    RETURNED = "RETURNED"
    ADJUSTED = "ADJUSTED"


class SterilityStatus(str, Enum):
    STERILE = "STERILE"
    NON_STERILE = "NON_STERILE"
    EXPIRED = "EXPIRED"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    UNAVAILABLE = "UNAVAILABLE"
    MISSING = "MISSING"


class FinancialAttribution(BaseModel):
    """Event-time financial fields. Validated by inventory.financial."""

    model_config = ConfigDict(extra="forbid")

    cost_override_cents: int | None = None
    # Plain strings: the validator reports bad values by constraint name.
    cost_override_reason: str | None = None
    cost_override_note: str | None = None
    provided_by_vendor_id: UUID | None = None
    provided_by_rep_name: str | None = None
    is_gratis: bool = False
    gratis_reason: str | None = None


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    inventory_item_id: UUID
    occurred_at: datetime | None = None
    notes: str | None = None
    device_event_id: UUID | None = None
    financial: FinancialAttribution | None = None


class ReceivedEvent(_EventBase):
    event_type: Literal["RECEIVED"] = "RECEIVED"
    sterility_status: SterilityStatus | None = None


class VerifiedEvent(_EventBase):
    event_type: Literal["VERIFIED"] = "VERIFIED"


class LocationChangedEvent(_EventBase):
    event_type: Literal["LOCATION_CHANGED"] = "LOCATION_CHANGED"
    location_id: UUID | None = None


class ReservedEvent(_EventBase):
    event_type: Literal["RESERVED"] = "RESERVED"
    case_id: UUID


class ReleasedEvent(_EventBase):
    event_type: Literal["RELEASED"] = "RELEASED"
    case_id: UUID | None = None


class ConsumedEvent(_EventBase):
    event_type: Literal["CONSUMED"] = "CONSUMED"
    case_id: UUID | None = None


class ExpiredEvent(_EventBase):
    event_type: Literal["EXPIRED"] = "EXPIRED"


class ReturnedEvent(_EventBase):
    event_type: Literal["RETURNED"] = "RETURNED"


class AdjustedEvent(_EventBase):
    event_type: Literal["ADJUSTED"] = "ADJUSTED"


NewInventoryEvent = Annotated[
    Union[
        ReceivedEvent,
        VerifiedEvent,
        LocationChangedEvent,
        ReservedEvent,
        ReleasedEvent,
        ConsumedEvent,
        ExpiredEvent,
        ReturnedEvent,
        AdjustedEvent,
    ],
    Field(discriminator="event_type"),
]

new_event_adapter: TypeAdapter[NewInventoryEvent] = TypeAdapter(NewInventoryEvent)


def parse_event(payload: dict) -> NewInventoryEvent:
    """Validate a raw dict into the matching event variant."""
    return new_event_adapter.validate_python(payload)


def as_naive_utc(value: datetime | None) -> datetime:
    """Normalize a caller-supplied timestamp to naive UTC (now when absent)."""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
