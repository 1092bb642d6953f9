"""
Event Store — append-only inventory events plus the item projection update.

Every write path appends an InventoryEvent and updates the InventoryItem
cache in the same transaction. The item row is read with FOR UPDATE inside
that transaction, so previous_location_id (and every other "before this
event" value) is taken from a locked snapshot, never a stale read.

Bulk batches are all-or-nothing: missing items are detected up front and
reported together, each distinct item is fetched once, and events are
applied in input order against that snapshot.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from collections.abc import Sequence
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import NotFoundError, ValidationError, Violation
from db.models import InventoryEvent, InventoryItem
from inventory.events import LocationChangedEvent, NewInventoryEvent, as_naive_utc
from inventory.financial import validate_financial_attribution
from inventory.projector import AppliedEvent, ItemState, apply_event, applied_from_row, replay
from inventory.repository import InventoryRepository, LocationRepository, VendorRepository

logger = structlog.get_logger()


class EventStore:
    """Records inventory events for one facility-scoped session."""

    def __init__(
        self,
        db: AsyncSession,
        items: InventoryRepository,
        locations: LocationRepository,
        vendors: VendorRepository,
    ):
        self.db = db
        self.items = items
        self.locations = locations
        self.vendors = vendors

    @classmethod
    def for_session(cls, db: AsyncSession) -> "EventStore":
        return cls(db, InventoryRepository(db), LocationRepository(db), VendorRepository(db))

    # ── Writes ──────────────────────────────────────────────────────────

    async def record_event(
        self,
        facility_id: uuid.UUID,
        user_id: uuid.UUID,
        event: NewInventoryEvent,
    ) -> tuple[InventoryItem, InventoryEvent]:
        """Append one event and update the item projection atomically."""
        try:
            item = await self.items.get_item(facility_id, event.inventory_item_id, for_update=True)
            if item is None:
                raise NotFoundError("Inventory item not found", code="INVENTORY_ITEM_NOT_FOUND")
            row = await self._append(facility_id, user_id, item, event)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return item, row

    async def record_events(
        self,
        facility_id: uuid.UUID,
        user_id: uuid.UUID,
        events: Sequence[NewInventoryEvent],
    ) -> list[InventoryEvent]:
        """
        Record a batch in input order inside one transaction.

        Any missing item rejects the whole batch with every missing id;
        any later failure rolls back everything already applied.
        """
        settings = get_settings()
        if not events or len(events) > settings.bulk_event_max:
            raise ValidationError(
                f"A bulk request must contain between 1 and {settings.bulk_event_max} events",
                code="BULK_SIZE_INVALID",
                violations=[Violation(code="BULK_SIZE_INVALID", field="events")],
            )

        item_ids = list(dict.fromkeys(e.inventory_item_id for e in events))
        try:
            snapshot = await self.items.get_items(facility_id, item_ids, for_update=True)
            missing = [item_id for item_id in item_ids if item_id not in snapshot]
            if missing:
                logger.info(
                    "inventory.bulk_rejected",
                    facility_id=str(facility_id),
                    missing_ids=[str(i) for i in missing],
                    batch_size=len(events),
                )
                raise ValidationError(
                    "One or more inventory items were not found",
                    code="INVENTORY_ITEMS_NOT_FOUND",
                    extras={"missing_ids": [str(i) for i in missing]},
                )

            rows = []
            for event in events:
                rows.append(await self._append(facility_id, user_id, snapshot[event.inventory_item_id], event))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return rows

    async def _append(
        self,
        facility_id: uuid.UUID,
        user_id: uuid.UUID,
        item: InventoryItem,
        event: NewInventoryEvent,
    ) -> InventoryEvent:
        if isinstance(event, LocationChangedEvent) and event.location_id is not None:
            location = await self.locations.get_active(facility_id, event.location_id)
            if location is None:
                raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")

        await validate_financial_attribution(facility_id, event.financial, self.vendors)

        occurred_at = as_naive_utc(event.occurred_at)
        before = ItemState.from_item(item)
        after = apply_event(
            before,
            AppliedEvent(payload=event, performed_by_user_id=user_id, occurred_at=occurred_at),
        )

        sterility = getattr(event, "sterility_status", None)
        financial = event.financial
        row = InventoryEvent(
            event_id=uuid.uuid4(),
            facility_id=facility_id,
            inventory_item_id=item.item_id,
            event_type=event.event_type,
            case_id=getattr(event, "case_id", None),
            location_id=getattr(event, "location_id", None),
            previous_location_id=before.location_id,
            sterility_status=sterility.value if sterility is not None else None,
            notes=event.notes,
            performed_by_user_id=user_id,
            device_event_id=event.device_event_id,
            occurred_at=occurred_at,
            cost_snapshot_cents=item.catalog.unit_cost_cents if item.catalog is not None else None,
        )
        if financial is not None:
            row.cost_override_cents = financial.cost_override_cents
            row.cost_override_reason = financial.cost_override_reason
            row.cost_override_note = financial.cost_override_note
            row.provided_by_vendor_id = financial.provided_by_vendor_id
            row.provided_by_rep_name = financial.provided_by_rep_name
            row.is_gratis = financial.is_gratis
            row.gratis_reason = financial.gratis_reason
        else:
            row.is_gratis = False

        self.items.append_event(row)
        after.write_to(item)
        item.updated_at = datetime.utcnow()

        logger.info(
            "inventory.event_recorded",
            facility_id=str(facility_id),
            item_id=str(item.item_id),
            event_type=event.event_type,
            device_event_id=str(event.device_event_id) if event.device_event_id else None,
        )
        return row

    # ── Reads ───────────────────────────────────────────────────────────

    async def item_history(
        self,
        facility_id: uuid.UUID,
        item_id: uuid.UUID,
        limit: int | None = None,
    ) -> list[InventoryEvent]:
        """Events for one item, newest first."""
        item = await self.items.get_item(facility_id, item_id)
        if item is None:
            raise NotFoundError("Inventory item not found", code="INVENTORY_ITEM_NOT_FOUND")
        limit = limit or get_settings().item_history_limit
        return list(await self.items.events_for_item(facility_id, item_id, newest_first=True, limit=limit))

    async def replay_item(self, facility_id: uuid.UUID, item_id: uuid.UUID, initial: ItemState) -> ItemState:
        """Recompute an item's projection from its full log in occurrence order."""
        rows = await self.items.events_for_item(facility_id, item_id, newest_first=False)
        return replay(initial, (applied_from_row(row) for row in rows))
