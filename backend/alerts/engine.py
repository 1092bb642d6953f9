"""
Risk Rule Engine — derive and rank inventory alarms from catalog policy.

Agent: full-stack-engineer + data-engineer
Skill: alert-systems
Patterns used: Rule-based detection, deterministic total ordering

Rules (evaluated independently, several may fire per item):
  - MISSING_LOT:        catalog requires lot tracking, item has no lot
  - MISSING_SERIAL:     catalog requires serial tracking, item has no serial
  - MISSING_EXPIRATION: expiration required, item has no expiration date
  - EXPIRED:            sterility EXPIRED, or expiration on/before today (always RED)
  - EXPIRING_SOON:      not expired, expiration required, within warning window

Truth comes only from InventoryItem + ItemCatalog. Device events are never
read here.
"""

import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from core.config import Settings, get_settings
from db.models import InventoryItem, ItemCatalog
from inventory.checkin import expiration_required
from inventory.repository import InventoryRepository

logger = structlog.get_logger()

SEVERITY_RANK = {"RED": 0, "ORANGE": 1, "YELLOW": 2}


@dataclass
class RiskItem:
    rule: str
    severity: str
    facility_id: uuid.UUID
    catalog_id: uuid.UUID
    catalog_name: str
    inventory_item_id: uuid.UUID
    identifier: str | None
    days_to_expire: int | None
    expires_at: date | None
    missing_fields: list[str] = field(default_factory=list)
    explain: str = ""
    debug: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ──────────────────────────────────────────────────────────────────────────
# Policy
# ──────────────────────────────────────────────────────────────────────────


def classify_severity(criticality: str | None) -> str:
    """Severity for every rule except EXPIRED."""
    if criticality == "CRITICAL":
        return "RED"
    elif criticality == "IMPORTANT":
        return "ORANGE"
    elif criticality == "ROUTINE":
        return "YELLOW"
    return "YELLOW"


def effective_warning_days(catalog: ItemCatalog, settings: Settings | None = None) -> int:
    """Catalog override, else the criticality default, else the global default."""
    if catalog.expiration_warning_days is not None:
        return catalog.expiration_warning_days
    settings = settings or get_settings()
    if catalog.criticality == "CRITICAL":
        return settings.expiration_warning_days_critical
    elif catalog.criticality == "IMPORTANT":
        return settings.expiration_warning_days_important
    elif catalog.criticality == "ROUTINE":
        return settings.expiration_warning_days_routine
    return settings.expiration_warning_days_default


def days_to_expire(expires_at: date | datetime | None, today: date) -> int | None:
    if expires_at is None:
        return None
    if isinstance(expires_at, datetime):
        expires_at = expires_at.date()
    return (expires_at - today).days


# ──────────────────────────────────────────────────────────────────────────
# Evaluation
# ──────────────────────────────────────────────────────────────────────────


def evaluate_item(
    item: InventoryItem,
    catalog: ItemCatalog,
    today: date,
    settings: Settings | None = None,
) -> list[RiskItem]:
    """Every alarm that fires for one item."""
    settings = settings or get_settings()
    exp_required = expiration_required(catalog)
    warning_days = effective_warning_days(catalog, settings)
    severity = classify_severity(catalog.criticality)
    days = days_to_expire(item.sterility_expires_at, today)
    identifier = item.barcode or item.serial_number or item.lot_number

    def risk(rule: str, rule_severity: str, explain: str, missing: list[str] | None = None) -> RiskItem:
        return RiskItem(
            rule=rule,
            severity=rule_severity,
            facility_id=item.facility_id,
            catalog_id=catalog.catalog_id,
            catalog_name=catalog.name,
            inventory_item_id=item.item_id,
            identifier=identifier,
            days_to_expire=days,
            expires_at=item.sterility_expires_at,
            missing_fields=missing or [],
            explain=explain,
            debug={
                "criticality": catalog.criticality,
                "requires_sterility": catalog.requires_sterility,
                "expiration_required": exp_required,
                "effective_warning_days": warning_days,
            },
        )

    risks = []

    if catalog.requires_lot_tracking and not item.lot_number:
        risks.append(
            risk("MISSING_LOT", severity, f"{catalog.name} requires lot tracking but has no lot number", ["lot_number"])
        )
    if catalog.requires_serial_tracking and not item.serial_number:
        risks.append(
            risk(
                "MISSING_SERIAL",
                severity,
                f"{catalog.name} requires serial tracking but has no serial number",
                ["serial_number"],
            )
        )
    if exp_required and item.sterility_expires_at is None:
        risks.append(
            risk(
                "MISSING_EXPIRATION",
                severity,
                f"{catalog.name} requires an expiration date but none is recorded",
                ["sterility_expires_at"],
            )
        )

    expired = item.sterility_status == "EXPIRED" or (days is not None and days <= 0)
    if expired:
        if days is not None and days <= 0:
            explain = f"{catalog.name} expired on {item.sterility_expires_at.isoformat()}"
        else:
            explain = f"{catalog.name} is marked EXPIRED"
        risks.append(risk("EXPIRED", "RED", explain))
    elif exp_required and days is not None and days <= warning_days:
        risks.append(
            risk(
                "EXPIRING_SOON",
                severity,
                f"{catalog.name} expires in {days} days (warning window {warning_days} days)",
            )
        )

    return risks


def risk_sort_key(risk: RiskItem) -> tuple:
    """Severity desc → rule asc → days asc (missing last) → catalog name asc."""
    return (
        SEVERITY_RANK.get(risk.severity, len(SEVERITY_RANK)),
        risk.rule,
        risk.days_to_expire is None,
        risk.days_to_expire if risk.days_to_expire is not None else 0,
        risk.catalog_name,
    )


def build_risk_queue(
    rows: list[tuple[InventoryItem, ItemCatalog]],
    today: date,
    settings: Settings | None = None,
) -> list[RiskItem]:
    risks = []
    for item, catalog in rows:
        risks.extend(evaluate_item(item, catalog, today, settings))
    return sorted(risks, key=risk_sort_key)


async def facility_today(facility_id: uuid.UUID, items: InventoryRepository) -> date:
    """Current calendar date at the facility, falling back to UTC."""
    tz_name = await items.facility_timezone(facility_id) or "UTC"
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("risk_queue.unknown_timezone", facility_id=str(facility_id), timezone=tz_name)
        tz = ZoneInfo("UTC")
    return datetime.now(tz).date()


async def compute_risk_queue(
    facility_id: uuid.UUID,
    items: InventoryRepository,
    today: date | None = None,
) -> list[RiskItem]:
    """Read-only, facility-scoped risk queue over current item state.

    Expiry days count from the facility's local date unless `today` is given.
    """
    today = today or await facility_today(facility_id, items)
    rows = await items.items_with_catalog(facility_id)
    queue = build_risk_queue(list(rows), today)

    logger.info(
        "risk_queue.computed",
        facility_id=str(facility_id),
        items_scanned=len(rows),
        total=len(queue),
        by_severity=dict(Counter(r.severity for r in queue)),
    )
    return queue
