"""
Financial Attribution Validator — event-time cost/gratis/vendor rules.

Rules (checked together, every violation reported):
  - cost_override_cents present → cost_override_reason required and known
  - cost_override_reason OTHER → cost_override_note required
  - cost_override_cents must not be negative
  - is_gratis → gratis_reason required and known
  - provided_by_vendor_id → vendor must exist in the facility and be active

A vendor that does not exist (or belongs to another facility) is a NotFound,
not a validation failure.
"""

import uuid

import structlog

from core.errors import NotFoundError, ValidationError, ViolationCollector
from db.models import COST_OVERRIDE_REASONS, GRATIS_REASONS
from inventory.events import FinancialAttribution
from inventory.repository import VendorRepository

logger = structlog.get_logger()


async def validate_financial_attribution(
    facility_id: uuid.UUID,
    financial: FinancialAttribution | None,
    vendors: VendorRepository,
) -> None:
    """Raise ValidationError naming each violated constraint, or return None."""
    if financial is None:
        return

    violations = ViolationCollector()

    if financial.cost_override_cents is not None:
        if financial.cost_override_cents < 0:
            violations.add(
                "COST_OVERRIDE_NEGATIVE",
                "cost_override_cents",
                "Cost override must be zero or greater",
            )
        if not financial.cost_override_reason:
            violations.add(
                "COST_OVERRIDE_REASON_REQUIRED",
                "cost_override_reason",
                "A cost override requires a reason",
            )

    if financial.cost_override_reason:
        if financial.cost_override_reason not in COST_OVERRIDE_REASONS:
            violations.add(
                "COST_OVERRIDE_REASON_INVALID",
                "cost_override_reason",
                f"Unknown cost override reason '{financial.cost_override_reason}'",
            )
        elif financial.cost_override_reason == "OTHER" and not (financial.cost_override_note or "").strip():
            violations.add(
                "COST_OVERRIDE_NOTE_REQUIRED",
                "cost_override_note",
                "Cost override reason OTHER requires a note",
            )

    if financial.is_gratis:
        if not financial.gratis_reason:
            violations.add("GRATIS_REASON_REQUIRED", "gratis_reason", "A gratis item requires a gratis reason")
        elif financial.gratis_reason not in GRATIS_REASONS:
            violations.add(
                "GRATIS_REASON_INVALID",
                "gratis_reason",
                f"Unknown gratis reason '{financial.gratis_reason}'",
            )

    if financial.provided_by_vendor_id is not None:
        vendor = await vendors.get(facility_id, financial.provided_by_vendor_id)
        if vendor is None:
            raise NotFoundError("Vendor not found", code="VENDOR_NOT_FOUND")
        if not vendor.is_active:
            violations.add("VENDOR_INACTIVE", "provided_by_vendor_id", f"Vendor '{vendor.name}' is inactive")

    if violations:
        logger.info(
            "financial.rejected",
            facility_id=str(facility_id),
            constraints=[v.code for v in violations.violations],
        )
        raise ValidationError(
            "Financial attribution rejected",
            violations=violations.violations,
            code=violations.violations[0].code,
        )
