"""
Tests for the Risk Rule Engine.

Covers:
  - Severity derivation from catalog criticality
  - Warning window resolution (catalog override → criticality → default)
  - Each rule firing independently
  - EXPIRED precedence over EXPIRING_SOON
  - Deterministic total ordering of the queue
  - Facility scoping and exclusion of consumed / retired items
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from alerts.engine import (
    build_risk_queue,
    classify_severity,
    compute_risk_queue,
    days_to_expire,
    effective_warning_days,
    evaluate_item,
    facility_today,
)
from core.config import Settings
from db.models import Facility
from inventory.repository import InventoryRepository

TODAY = date(2026, 6, 1)
SETTINGS = Settings()


def _catalog(name="Hip Stem", **overrides):
    fields = {
        "catalog_id": uuid.uuid4(),
        "name": name,
        "category": "INSTRUMENT",
        "criticality": "ROUTINE",
        "requires_sterility": False,
        "requires_lot_tracking": False,
        "requires_serial_tracking": False,
        "requires_expiration_tracking": False,
        "expiration_warning_days": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _item(**overrides):
    fields = {
        "item_id": uuid.uuid4(),
        "facility_id": uuid.UUID("00000000-0000-0000-0000-000000000001"),
        "barcode": None,
        "serial_number": None,
        "lot_number": None,
        "sterility_status": "STERILE",
        "sterility_expires_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestSeverity:
    @pytest.mark.parametrize(
        "criticality, expected",
        [("CRITICAL", "RED"), ("IMPORTANT", "ORANGE"), ("ROUTINE", "YELLOW"), ("UNHEARD_OF", "YELLOW"), (None, "YELLOW")],
    )
    def test_classify(self, criticality, expected):
        assert classify_severity(criticality) == expected


class TestWarningWindow:
    def test_catalog_override_wins(self):
        assert effective_warning_days(_catalog(criticality="CRITICAL", expiration_warning_days=7), SETTINGS) == 7

    def test_criticality_defaults(self):
        assert effective_warning_days(_catalog(criticality="CRITICAL"), SETTINGS) == 90
        assert effective_warning_days(_catalog(criticality="IMPORTANT"), SETTINGS) == 60
        assert effective_warning_days(_catalog(criticality="ROUTINE"), SETTINGS) == 30

    def test_unknown_criticality_uses_global_default(self):
        assert effective_warning_days(_catalog(criticality="UNHEARD_OF"), SETTINGS) == 30

    def test_days_to_expire(self):
        assert days_to_expire(None, TODAY) is None
        assert days_to_expire(TODAY + timedelta(days=3), TODAY) == 3
        assert days_to_expire(TODAY - timedelta(days=2), TODAY) == -2


class TestEvaluateItem:
    def test_critical_implant_expiring_in_45_days(self):
        catalog = _catalog(category="IMPLANT", criticality="CRITICAL", requires_sterility=True)
        item = _item(barcode="BC-1", sterility_expires_at=TODAY + timedelta(days=45))

        risks = evaluate_item(item, catalog, TODAY, SETTINGS)

        assert [(r.rule, r.severity, r.days_to_expire) for r in risks] == [("EXPIRING_SOON", "RED", 45)]
        assert risks[0].debug["effective_warning_days"] == 90

    def test_expiring_today_is_expired_and_red(self):
        catalog = _catalog(criticality="ROUTINE", requires_expiration_tracking=True)
        risks = evaluate_item(_item(sterility_expires_at=TODAY), catalog, TODAY, SETTINGS)
        assert [(r.rule, r.severity) for r in risks] == [("EXPIRED", "RED")]

    def test_expired_status_without_date(self):
        risks = evaluate_item(_item(sterility_status="EXPIRED"), _catalog(), TODAY, SETTINGS)
        assert [r.rule for r in risks] == ["EXPIRED"]
        assert risks[0].days_to_expire is None

    def test_outside_window_is_quiet(self):
        catalog = _catalog(criticality="ROUTINE", requires_expiration_tracking=True)
        item = _item(sterility_expires_at=TODAY + timedelta(days=31))
        assert evaluate_item(item, catalog, TODAY, SETTINGS) == []

    def test_expiring_soon_needs_expiration_policy(self):
        item = _item(sterility_expires_at=TODAY + timedelta(days=5))
        assert evaluate_item(item, _catalog(), TODAY, SETTINGS) == []

    def test_missing_tracking_fields_each_fire(self):
        catalog = _catalog(
            criticality="IMPORTANT",
            requires_lot_tracking=True,
            requires_serial_tracking=True,
            requires_expiration_tracking=True,
        )
        risks = evaluate_item(_item(), catalog, TODAY, SETTINGS)

        assert [r.rule for r in risks] == ["MISSING_LOT", "MISSING_SERIAL", "MISSING_EXPIRATION"]
        assert {r.severity for r in risks} == {"ORANGE"}
        assert [r.missing_fields for r in risks] == [["lot_number"], ["serial_number"], ["sterility_expires_at"]]

    def test_identifier_falls_back_to_serial_then_lot(self):
        catalog = _catalog(requires_lot_tracking=True, requires_serial_tracking=True, requires_expiration_tracking=True)
        assert evaluate_item(_item(serial_number="SN-1"), catalog, TODAY, SETTINGS)[0].identifier == "SN-1"
        assert evaluate_item(_item(lot_number="L-1"), catalog, TODAY, SETTINGS)[0].identifier == "L-1"


class TestQueueOrdering:
    def test_total_order(self):
        expiring = _catalog(name="Zeta Plate", criticality="CRITICAL", requires_expiration_tracking=True)
        expiring_b = _catalog(name="Alpha Plate", criticality="CRITICAL", requires_expiration_tracking=True)
        important = _catalog(name="Bone Screw", criticality="IMPORTANT", requires_lot_tracking=True)
        routine = _catalog(name="Drape", criticality="ROUTINE", requires_expiration_tracking=True)

        rows = [
            (_item(sterility_expires_at=TODAY + timedelta(days=20)), routine),
            (_item(), important),
            (_item(sterility_expires_at=TODAY + timedelta(days=30)), expiring),
            (_item(sterility_expires_at=TODAY + timedelta(days=30)), expiring_b),
            (_item(sterility_expires_at=TODAY + timedelta(days=10)), expiring),
            (_item(sterility_expires_at=TODAY - timedelta(days=1)), routine),
        ]

        queue = build_risk_queue(rows, TODAY, SETTINGS)

        assert [(r.severity, r.rule, r.days_to_expire, r.catalog_name) for r in queue] == [
            ("RED", "EXPIRED", -1, "Drape"),
            ("RED", "EXPIRING_SOON", 10, "Zeta Plate"),
            ("RED", "EXPIRING_SOON", 30, "Alpha Plate"),
            ("RED", "EXPIRING_SOON", 30, "Zeta Plate"),
            ("ORANGE", "MISSING_LOT", None, "Bone Screw"),
            ("YELLOW", "EXPIRING_SOON", 20, "Drape"),
        ]

    def test_missing_days_sort_last_within_rule(self):
        catalog = _catalog(name="Tray", criticality="CRITICAL", requires_lot_tracking=True)
        rows = [
            (_item(), catalog),
            (_item(sterility_expires_at=TODAY + timedelta(days=400)), catalog),
        ]
        queue = build_risk_queue(rows, TODAY, SETTINGS)
        assert [r.days_to_expire for r in queue] == [400, None]

    def test_order_is_independent_of_input_order(self):
        catalog = _catalog(criticality="CRITICAL", requires_expiration_tracking=True)
        rows = [(_item(sterility_expires_at=TODAY + timedelta(days=d)), catalog) for d in (5, 50, 1)]
        forward = build_risk_queue(rows, TODAY, SETTINGS)
        backward = build_risk_queue(list(reversed(rows)), TODAY, SETTINGS)
        assert [r.days_to_expire for r in forward] == [r.days_to_expire for r in backward] == [1, 5, 50]


@pytest.mark.asyncio
class TestComputeRiskQueue:
    async def test_scoped_and_excludes_consumed_and_retired(self, test_db, seeded_db):
        from db.models import InventoryItem

        facility_id = seeded_db["facility_id"]
        test_db.add_all(
            [
                InventoryItem(
                    facility_id=facility_id,
                    catalog_id=seeded_db["tracked"].catalog_id,
                    barcode="USED",
                    sterility_status="EXPIRED",
                    availability_status="UNAVAILABLE",
                ),
                InventoryItem(
                    facility_id=facility_id,
                    catalog_id=seeded_db["retired"].catalog_id,
                    barcode="OLD-DRILL",
                    sterility_status="EXPIRED",
                    availability_status="AVAILABLE",
                ),
                InventoryItem(
                    facility_id=facility_id,
                    catalog_id=seeded_db["implant_no_flag"].catalog_id,
                    barcode="SCREW-1",
                    sterility_status="NON_STERILE",
                    availability_status="AVAILABLE",
                ),
            ]
        )
        await test_db.commit()

        queue = await compute_risk_queue(facility_id, InventoryRepository(test_db))

        identifiers = {r.identifier for r in queue}
        assert "USED" not in identifiers
        assert "OLD-DRILL" not in identifiers
        assert "BC-X" not in identifiers
        screw = [r for r in queue if r.identifier == "SCREW-1"]
        assert [(r.rule, r.severity) for r in screw] == [("MISSING_EXPIRATION", "ORANGE")]

    async def test_expiry_counts_from_facility_local_date(self, test_db, seeded_db, monkeypatch):
        from db.models import InventoryItem

        facility_id = seeded_db["facility_id"]
        monkeypatch.setattr("alerts.engine.datetime", _FrozenDatetime)
        await test_db.execute(
            update(Facility).where(Facility.facility_id == facility_id).values(timezone="Pacific/Kiritimati")
        )
        test_db.add(
            InventoryItem(
                facility_id=facility_id,
                catalog_id=seeded_db["tracked"].catalog_id,
                barcode="KIRI-1",
                serial_number="SN-K",
                lot_number="LOT-K",
                sterility_status="STERILE",
                sterility_expires_at=date(2026, 6, 2),
                availability_status="AVAILABLE",
            )
        )
        await test_db.commit()

        queue = await compute_risk_queue(facility_id, InventoryRepository(test_db))

        kiri = [r for r in queue if r.identifier == "KIRI-1"]
        assert [(r.rule, r.days_to_expire) for r in kiri] == [("EXPIRED", 0)]


class _FrozenDatetime(datetime):
    """12:00 UTC on 2026-06-01, already 2026-06-02 at UTC+14."""

    @classmethod
    def now(cls, tz=None):
        return datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc).astimezone(tz)


@pytest.mark.asyncio
class TestFacilityToday:
    async def test_uses_facility_timezone(self, test_db, seeded_db, monkeypatch):
        monkeypatch.setattr("alerts.engine.datetime", _FrozenDatetime)
        facility_id = seeded_db["facility_id"]
        await test_db.execute(
            update(Facility).where(Facility.facility_id == facility_id).values(timezone="Pacific/Kiritimati")
        )
        await test_db.commit()

        items = InventoryRepository(test_db)
        assert await facility_today(facility_id, items) == date(2026, 6, 2)
        assert await facility_today(seeded_db["other_facility_id"], items) == date(2026, 6, 1)

    async def test_unknown_timezone_falls_back_to_utc(self, test_db, seeded_db, monkeypatch):
        monkeypatch.setattr("alerts.engine.datetime", _FrozenDatetime)
        facility_id = seeded_db["facility_id"]
        await test_db.execute(
            update(Facility).where(Facility.facility_id == facility_id).values(timezone="Mars/Olympus_Mons")
        )
        await test_db.commit()

        assert await facility_today(facility_id, InventoryRepository(test_db)) == date(2026, 6, 1)
