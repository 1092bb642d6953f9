"""
Domain error taxonomy for the inventory core.

  - NotFoundError:   referenced item/device/vendor/location/catalog is absent,
                     or belongs to another facility. Never retried.
  - ValidationError: policy or cross-field violations. Carries every
                     violation, not just the first.
  - ConflictError:   uniqueness clash (duplicate barcode in a facility).

The API layer maps these to 404 / 400 / 409 in api/main.py.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Violation:
    """One violated constraint."""

    code: str
    field: str | None = None
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "field": self.field, "message": self.message}


class InventoryDomainError(Exception):
    """Base class for all errors raised by the inventory core."""

    status_code = 400
    code = "INVENTORY_ERROR"

    def __init__(self, detail: str, *, code: str | None = None, extras: dict[str, Any] | None = None):
        super().__init__(detail)
        self.detail = detail
        if code:
            self.code = code
        self.extras = extras or {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.detail, **self.extras}


class NotFoundError(InventoryDomainError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(InventoryDomainError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        detail: str,
        *,
        violations: list[Violation] | None = None,
        code: str | None = None,
        extras: dict[str, Any] | None = None,
    ):
        super().__init__(detail, code=code, extras=extras)
        self.violations = list(violations or [])

    @property
    def codes(self) -> list[str]:
        return [v.code for v in self.violations]

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["violations"] = [v.as_dict() for v in self.violations]
        return payload


class ConflictError(InventoryDomainError):
    status_code = 409
    code = "CONFLICT"


@dataclass
class ViolationCollector:
    """Accumulates violations so callers can report all of them at once."""

    violations: list[Violation] = field(default_factory=list)

    def add(self, code: str, field_name: str | None = None, message: str = "") -> None:
        self.violations.append(Violation(code=code, field=field_name, message=message))

    def __bool__(self) -> bool:
        return bool(self.violations)
