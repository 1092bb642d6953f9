"""
Tests for Check-in — catalog-driven required-field policy.
"""

import itertools
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from inventory.checkin import CheckInRequest, CheckInService, expiration_required, missing_required_fields

ALL_FIELDS = ("lot_number", "serial_number", "sterility_expires_at")
VALUES = {
    "lot_number": "LOT-1",
    "serial_number": "SN-1",
    "sterility_expires_at": date(2027, 1, 1),
}


def _catalog(**overrides):
    fields = {
        "requires_lot_tracking": False,
        "requires_serial_tracking": False,
        "requires_expiration_tracking": False,
        "requires_sterility": False,
        "category": "INSTRUMENT",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ── Pure policy ────────────────────────────────────────────────────────


class TestExpirationRequired:
    def test_explicit_flag(self):
        assert expiration_required(_catalog(requires_expiration_tracking=True))

    def test_sterile_items_always_require_expiration(self):
        assert expiration_required(_catalog(requires_sterility=True))

    def test_implants_always_require_expiration(self):
        assert expiration_required(_catalog(category="IMPLANT"))

    def test_plain_instrument_does_not(self):
        assert not expiration_required(_catalog())


class TestMissingFieldCompleteness:
    FULLY_TRACKED = _catalog(
        requires_lot_tracking=True,
        requires_serial_tracking=True,
        requires_expiration_tracking=True,
    )

    @pytest.mark.parametrize(
        "omitted",
        [subset for size in range(len(ALL_FIELDS) + 1) for subset in itertools.combinations(ALL_FIELDS, size)],
    )
    def test_omitted_subset_is_exactly_reported(self, omitted):
        provided = {name: value for name, value in VALUES.items() if name not in omitted}
        request = CheckInRequest(catalog_id="00000000-0000-0000-0000-0000000000aa", **provided)
        assert missing_required_fields(self.FULLY_TRACKED, request) == list(omitted)

    def test_blank_strings_count_as_missing(self):
        request = CheckInRequest(
            catalog_id="00000000-0000-0000-0000-0000000000aa",
            lot_number="  ",
            serial_number="",
            sterility_expires_at=date(2027, 1, 1),
        )
        assert missing_required_fields(self.FULLY_TRACKED, request) == ["lot_number", "serial_number"]

    def test_untracked_catalog_requires_nothing(self):
        request = CheckInRequest(catalog_id="00000000-0000-0000-0000-0000000000aa")
        assert missing_required_fields(_catalog(), request) == []


# ── Service ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestCheckInService:
    async def test_missing_fields_abort_with_full_list(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        request = CheckInRequest(catalog_id=seeded_db["tracked"].catalog_id, barcode="NEW-1")

        with pytest.raises(ValidationError) as exc_info:
            await service.check_in_item(seeded_db["facility_id"], request)

        err = exc_info.value
        assert err.code == "MISSING_REQUIRED_FIELDS"
        assert err.extras["missing_fields"] == ["lot_number", "serial_number", "sterility_expires_at"]
        assert err.extras["catalog_rules"]["expiration_required"] is True
        assert [v.field for v in err.violations] == ["lot_number", "serial_number", "sterility_expires_at"]

    async def test_implant_without_flag_still_requires_expiration(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        request = CheckInRequest(catalog_id=seeded_db["implant_no_flag"].catalog_id)

        with pytest.raises(ValidationError) as exc_info:
            await service.check_in_item(seeded_db["facility_id"], request)

        assert exc_info.value.extras["missing_fields"] == ["sterility_expires_at"]
        assert exc_info.value.extras["catalog_rules"]["requires_expiration_tracking"] is False

    async def test_sterile_catalog_defaults_to_sterile(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        request = CheckInRequest(
            catalog_id=seeded_db["tracked"].catalog_id,
            lot_number="LOT-9",
            serial_number="SN-9",
            sterility_expires_at=date.today() + timedelta(days=400),
            location_id=seeded_db["or_1"].location_id,
        )

        item = await service.check_in_item(seeded_db["facility_id"], request)

        assert item.sterility_status == "STERILE"
        assert item.availability_status == "AVAILABLE"
        assert item.location_id == seeded_db["or_1"].location_id
        assert item.catalog.name == "Hip Stem Size 4"

    async def test_non_sterile_catalog_defaults_to_non_sterile(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        item = await service.check_in_item(
            seeded_db["facility_id"], CheckInRequest(catalog_id=seeded_db["instrument"].catalog_id)
        )
        assert item.sterility_status == "NON_STERILE"

    async def test_explicit_sterility_wins(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        item = await service.check_in_item(
            seeded_db["facility_id"],
            CheckInRequest(catalog_id=seeded_db["instrument"].catalog_id, sterility_status="STERILE"),
        )
        assert item.sterility_status == "STERILE"

    async def test_gs1_barcode_is_decoded_onto_item(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        barcode = "0100812345678903172712311" "0LOT77\x1d21SER77"
        item = await service.check_in_item(
            seeded_db["facility_id"],
            CheckInRequest(
                catalog_id=seeded_db["tracked"].catalog_id,
                barcode=barcode,
                lot_number="LOT77",
                serial_number="SER77",
                sterility_expires_at=date(2027, 12, 31),
            ),
        )
        assert item.barcode_classification == "gs1-datamatrix"
        assert item.barcode_gtin == "00812345678903"
        assert item.barcode_parsed_lot == "LOT77"
        assert item.barcode_parsed_serial == "SER77"
        assert item.barcode_parsed_expiration == date(2027, 12, 31)

    async def test_plain_barcode_records_classification_only(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        item = await service.check_in_item(
            seeded_db["facility_id"],
            CheckInRequest(catalog_id=seeded_db["instrument"].catalog_id, barcode="012345678905"),
        )
        assert item.barcode_classification == "upc-a"
        assert item.barcode_gtin is None

    async def test_duplicate_barcode_is_conflict(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        existing_id = seeded_db["item_c"].item_id

        with pytest.raises(ConflictError) as exc_info:
            await service.check_in_item(
                seeded_db["facility_id"],
                CheckInRequest(catalog_id=seeded_db["instrument"].catalog_id, barcode="BC-C"),
            )
        assert exc_info.value.extras["existing_item_id"] == str(existing_id)

    async def test_same_barcode_in_other_facility_is_allowed(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        item = await service.check_in_item(
            seeded_db["facility_id"],
            CheckInRequest(catalog_id=seeded_db["instrument"].catalog_id, barcode="BC-X"),
        )
        assert item.barcode == "BC-X"

    async def test_inactive_catalog_is_not_found(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        with pytest.raises(NotFoundError):
            await service.check_in_item(
                seeded_db["facility_id"], CheckInRequest(catalog_id=seeded_db["retired"].catalog_id)
            )

    async def test_unknown_location_is_not_found(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        with pytest.raises(NotFoundError) as exc_info:
            await service.check_in_item(
                seeded_db["facility_id"],
                CheckInRequest(
                    catalog_id=seeded_db["instrument"].catalog_id,
                    location_id=seeded_db["other_location"].location_id,
                ),
            )
        assert exc_info.value.code == "LOCATION_NOT_FOUND"

    async def test_list_items_filters_by_status(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        items = await service.list_items(seeded_db["facility_id"], catalog_id=seeded_db["instrument"].catalog_id)
        assert {i.item_id for i in items} == {seeded_db["item_b"].item_id, seeded_db["item_c"].item_id}

        reserved = await service.list_items(seeded_db["facility_id"], availability_status="RESERVED")
        assert reserved == []

    async def test_get_item_is_facility_scoped(self, test_db, seeded_db):
        service = CheckInService.for_session(test_db)
        with pytest.raises(NotFoundError):
            await service.get_item(seeded_db["facility_id"], seeded_db["other_item"].item_id)
