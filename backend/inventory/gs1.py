"""
GS1 / Barcode Decoder — classify a raw scan and extract UDI fields.

Pure and total: every input, however malformed, produces a DecodeResult.
Hardware scans are adversarial input, so nothing in here raises.

Application Identifiers parsed:
  (01) GTIN        fixed, 14 digits
  (17) Expiration  fixed, 6 digits YYMMDD
  (10) Lot/Batch   variable, up to 20 chars, terminated by GS or end of data
  (21) Serial      variable, up to 20 chars, terminated by GS or end of data

Both human-readable "(01)...(10)..." and FNC1/GS-delimited element strings
are accepted. Fixed-length AIs need no separator; variable-length AIs are
only unambiguous when followed by GS (ASCII 29) or the end of the payload.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

GS = "\x1d"  # ASCII Group Separator (FNC1 equivalent)

SYMBOLOGY_DATAMATRIX = "]d2"
SYMBOLOGY_GS1_128 = "]C1"

FIXED_LENGTH_AIS = {"01": 14, "17": 6}
VARIABLE_LENGTH_AIS = {"10": 20, "21": 20}

_PAREN_AI = re.compile(r"\((\d{2,4})\)([^(]*)")
_HAS_PAREN_AI = re.compile(r"\(\d{2,4}\)")


class BarcodeClassification(str, Enum):
    """Symbology families the decoder can distinguish."""

    GS1_DATAMATRIX = "gs1-datamatrix"
    GS1_128 = "gs1-128"
    UPC_A = "upc-a"
    CODE128 = "code128"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GS1Data:
    gtin: str
    lot: str | None = None
    expiration: date | None = None
    serial: str | None = None

    def as_dict(self) -> dict:
        return {
            "gtin": self.gtin,
            "lot": self.lot,
            "expiration": self.expiration.isoformat() if self.expiration else None,
            "serial": self.serial,
        }


@dataclass(frozen=True)
class DecodeResult:
    raw_value: str
    classification: BarcodeClassification
    parsed: GS1Data | None = None
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.parsed is not None


# ──────────────────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────────────────


def classify_barcode(raw_value: str | None) -> BarcodeClassification:
    """Classify a barcode string by its format."""
    if not isinstance(raw_value, str) or not raw_value:
        return BarcodeClassification.UNKNOWN

    if raw_value.startswith(SYMBOLOGY_DATAMATRIX):
        return BarcodeClassification.GS1_DATAMATRIX
    if raw_value.startswith(SYMBOLOGY_GS1_128):
        return BarcodeClassification.GS1_128

    if GS in raw_value:
        if re.match(r"^01\d{14}", raw_value):
            return BarcodeClassification.GS1_DATAMATRIX
        return BarcodeClassification.GS1_128

    if re.match(r"^\(01\)\d{14}", raw_value):
        return BarcodeClassification.GS1_DATAMATRIX

    # Element string with no symbology prefix and no separator
    if re.match(r"^01\d{14}", raw_value) and len(raw_value) > 16:
        return BarcodeClassification.GS1_DATAMATRIX

    if re.fullmatch(r"\d{12}", raw_value) or re.fullmatch(r"\d{13}", raw_value):
        return BarcodeClassification.UPC_A  # EAN-13 treated as a UPC variant

    if re.fullmatch(r"\d{14}", raw_value):
        return BarcodeClassification.CODE128

    return BarcodeClassification.UNKNOWN


# ──────────────────────────────────────────────────────────────────────────
# AI parsing
# ──────────────────────────────────────────────────────────────────────────


def parse_gs1_date(yymmdd: str) -> date | None:
    """
    Parse a GS1 YYMMDD date.

    YY 00-49 → 2000-2049, YY 50-99 → 1950-1999. DD=00 means the last day
    of the month. Returns None for anything that is not a real date.
    """
    if not isinstance(yymmdd, str) or not re.fullmatch(r"\d{6}", yymmdd):
        return None

    yy, mm, dd = int(yymmdd[0:2]), int(yymmdd[2:4]), int(yymmdd[4:6])
    if mm < 1 or mm > 12:
        return None

    year = 2000 + yy if yy <= 49 else 1900 + yy
    last_day = calendar.monthrange(year, mm)[1]
    if dd == 0:
        return date(year, mm, last_day)
    if dd > last_day:
        return None
    return date(year, mm, dd)


class _Fields:
    """Mutable accumulator used while walking an element string."""

    def __init__(self) -> None:
        self.gtin: str | None = None
        self.lot: str | None = None
        self.expiration: date | None = None
        self.serial: str | None = None
        self.errors: list[str] = []

    def assign(self, ai: str, value: str) -> None:
        if ai == "01":
            if re.fullmatch(r"\d{14}", value):
                self.gtin = value
            else:
                self.errors.append("AI(01) GTIN must be 14 digits")
        elif ai == "17":
            if not re.fullmatch(r"\d{6}", value):
                self.errors.append("AI(17) expiration must be 6 digits")
                return
            parsed = parse_gs1_date(value)
            if parsed is None:
                self.errors.append("AI(17) invalid date")
            else:
                self.expiration = parsed
        elif ai in VARIABLE_LENGTH_AIS:
            limit = VARIABLE_LENGTH_AIS[ai]
            label = "lot" if ai == "10" else "serial"
            if not value:
                self.errors.append(f"AI({ai}) {label} is empty")
            elif len(value) > limit:
                self.errors.append(f"AI({ai}) {label} exceeds {limit} characters")
            elif ai == "10":
                self.lot = value
            else:
                self.serial = value


def _parse_parenthesized(data: str, fields: _Fields) -> None:
    for match in _PAREN_AI.finditer(data):
        ai, value = match.group(1), match.group(2).replace(GS, "")
        if ai in FIXED_LENGTH_AIS or ai in VARIABLE_LENGTH_AIS:
            fields.assign(ai, value)


def _parse_element_string(data: str, fields: _Fields) -> None:
    pos = 0
    while pos < len(data):
        if data[pos] == GS:
            pos += 1
            continue

        ai = data[pos : pos + 2]
        if ai in FIXED_LENGTH_AIS:
            length = FIXED_LENGTH_AIS[ai]
            value = data[pos + 2 : pos + 2 + length]
            fields.assign(ai, value)
            if len(value) < length or not value.isdigit():
                return  # cannot resynchronise after a broken fixed-length field
            pos += 2 + length
        elif ai in VARIABLE_LENGTH_AIS:
            end = data.find(GS, pos + 2)
            value = data[pos + 2 :] if end == -1 else data[pos + 2 : end]
            fields.assign(ai, value)
            pos = len(data) if end == -1 else end + 1
        else:
            fields.errors.append(f"Unsupported application identifier at offset {pos}")
            return


def decode(raw_value: str | None) -> DecodeResult:
    """
    Classify and parse a raw scan payload.

    Returns parsed=None whenever no valid GTIN could be extracted. Per-AI
    problems are collected in `errors` and never abort the whole decode.
    """
    classification = classify_barcode(raw_value)
    raw = raw_value if isinstance(raw_value, str) else ""

    if classification in (BarcodeClassification.UPC_A, BarcodeClassification.UNKNOWN):
        return DecodeResult(raw_value=raw, classification=classification, errors=("Not a GS1 barcode",))

    data = raw
    if data.startswith(SYMBOLOGY_DATAMATRIX) or data.startswith(SYMBOLOGY_GS1_128):
        data = data[3:]

    fields = _Fields()
    if _HAS_PAREN_AI.search(data):
        _parse_parenthesized(data, fields)
    else:
        _parse_element_string(data, fields)

    if fields.gtin is None:
        return DecodeResult(
            raw_value=raw,
            classification=classification,
            errors=tuple(fields.errors + ["No valid GTIN found"]),
        )

    return DecodeResult(
        raw_value=raw,
        classification=classification,
        parsed=GS1Data(
            gtin=fields.gtin,
            lot=fields.lot,
            expiration=fields.expiration,
            serial=fields.serial,
        ),
        errors=tuple(fields.errors),
    )


# ──────────────────────────────────────────────────────────────────────────
# Operator guidance
# ──────────────────────────────────────────────────────────────────────────

GUIDANCE = {
    BarcodeClassification.UPC_A: (
        "UPC/EAN barcodes identify the product only and carry no lot, serial or expiration. "
        "Scan the UDI (GS1 DataMatrix) barcode on the package instead."
    ),
    BarcodeClassification.CODE128: (
        "This Code 128 barcode contains no GS1 data. "
        "Scan the UDI barcode or enter lot, serial and expiration manually."
    ),
    BarcodeClassification.GS1_DATAMATRIX: (
        "GS1 barcode could not be read (no valid GTIN). Rescan or enter the item details manually."
    ),
    BarcodeClassification.GS1_128: (
        "GS1 barcode could not be read (no valid GTIN). Rescan or enter the item details manually."
    ),
    BarcodeClassification.UNKNOWN: (
        "Unrecognized barcode format. Check the scanner configuration or enter the item details manually."
    ),
}


def scan_guidance(classification: BarcodeClassification) -> str:
    """Human-readable next step for a scan that matched nothing and parsed nothing."""
    return GUIDANCE.get(classification, GUIDANCE[BarcodeClassification.UNKNOWN])
