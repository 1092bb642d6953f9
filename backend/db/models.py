"""
ASC Inventory Database Models

Multi-tenant via facility_id on every table. Cross-facility access is
impossible by construction: every lookup in the core filters on facility_id.

Tables:
  Collaborator-owned (read-only to the inventory core):
  1. facilities          - Tenant boundary
  2. locations           - Storage locations within a facility
  3. vendors             - Manufacturers / distributors / loaner providers
  4. item_catalog        - Catalog definitions carrying tracking policy
  5. catalog_identifiers - Optional GTIN / REF / UPC references per catalog entry

  Inventory truth-state:
  6. inventory_items     - Projection: one row per physical unit
  7. inventory_events    - Append-only event log (source of truth)

  Devices (audit only, never truth):
  8. devices             - Registered scanners / readers
  9. device_events       - Append-only raw scan log
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# ─── Enumerations (stored as constrained strings) ──────────────────────────

STERILITY_STATUSES = ("STERILE", "NON_STERILE", "EXPIRED")
AVAILABILITY_STATUSES = ("AVAILABLE", "RESERVED", "UNAVAILABLE", "MISSING")
INVENTORY_EVENT_TYPES = (
    "RECEIVED",
    "VERIFIED",
    "LOCATION_CHANGED",
    "RESERVED",
    "RELEASED",
    "CONSUMED",
    "EXPIRED",
    "RETURNED",
    "ADJUSTED",
)
CATALOG_CATEGORIES = ("IMPLANT", "INSTRUMENT", "LOANER", "HIGH_VALUE_SUPPLY")
VENDOR_TYPES = ("MANUFACTURER", "DISTRIBUTOR", "LOANER_PROVIDER", "CONSIGNMENT")
DEVICE_TYPES = ("barcode", "rfid", "nfc", "other")
PAYLOAD_TYPES = ("scan", "presence", "input")
COST_OVERRIDE_REASONS = (
    "CATALOG_ERROR",
    "NEGOTIATED_DISCOUNT",
    "VENDOR_CONCESSION",
    "DAMAGE_CREDIT",
    "EXPIRED_CREDIT",
    "CONTRACT_ADJUSTMENT",
    "GRATIS_CONVERSION",
    "OTHER",
)
GRATIS_REASONS = (
    "VENDOR_SAMPLE",
    "VENDOR_SUPPORT",
    "CLINICAL_TRIAL",
    "GOODWILL",
    "WARRANTY_REPLACEMENT",
    "OTHER",
)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# ─── 1. Facilities ──────────────────────────────────────────────────────────


class Facility(Base):
    __tablename__ = "facilities"

    facility_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    timezone = Column(String(50), nullable=False, default="UTC")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (CheckConstraint("status IN ('active', 'inactive', 'demo')", name="ck_facility_status"),)


# ─── 2. Locations ───────────────────────────────────────────────────────────


class Location(Base):
    __tablename__ = "locations"

    location_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    name = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("facility_id", "name", name="uq_location_name_per_facility"),
        Index("ix_locations_facility", "facility_id"),
    )


# ─── 3. Vendors ─────────────────────────────────────────────────────────────


class Vendor(Base):
    __tablename__ = "vendors"

    vendor_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    name = Column(String(255), nullable=False)
    vendor_type = Column(String(30), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("facility_id", "name", name="uq_vendor_name_per_facility"),
        CheckConstraint(_in_list("vendor_type", VENDOR_TYPES), name="ck_vendor_type"),
    )


# ─── 4. Item Catalog (tracking policy) ──────────────────────────────────────


class ItemCatalog(Base):
    __tablename__ = "item_catalog"

    catalog_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(30), nullable=False)
    manufacturer = Column(String(255))
    requires_sterility = Column(Boolean, nullable=False, default=True)
    requires_lot_tracking = Column(Boolean, nullable=False, default=False)
    requires_serial_tracking = Column(Boolean, nullable=False, default=False)
    requires_expiration_tracking = Column(Boolean, nullable=False, default=False)
    # Free text on purpose: unrecognized criticality levels must degrade, not fail.
    criticality = Column(String(20), nullable=False, default="ROUTINE")
    expiration_warning_days = Column(Integer, nullable=True)
    unit_cost_cents = Column(Integer, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_item_catalog_facility", "facility_id"),
        CheckConstraint(_in_list("category", CATALOG_CATEGORIES), name="ck_catalog_category"),
        CheckConstraint("unit_cost_cents IS NULL OR unit_cost_cents >= 0", name="ck_catalog_unit_cost"),
    )

    identifiers = relationship("CatalogIdentifier", back_populates="catalog")


# ─── 5. Catalog Identifiers ─────────────────────────────────────────────────


class CatalogIdentifier(Base):
    __tablename__ = "catalog_identifiers"

    identifier_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    catalog_id = Column(GUID(), ForeignKey("item_catalog.catalog_id"), nullable=False)
    identifier_type = Column(String(20), nullable=False)  # REF, GTIN, BARCODE, UPC
    raw_value = Column(String(255), nullable=False)
    source = Column(String(20), nullable=False, default="manual")
    classification = Column(String(30), nullable=False, default="unknown")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "facility_id", "catalog_id", "identifier_type", "raw_value", name="uq_catalog_identifier"
        ),
        Index("ix_catalog_identifier_lookup", "facility_id", "identifier_type", "raw_value"),
        CheckConstraint("identifier_type IN ('REF', 'GTIN', 'BARCODE', 'UPC')", name="ck_identifier_type"),
    )

    catalog = relationship("ItemCatalog", back_populates="identifiers")


# ─── 6. Inventory Items (projection) ────────────────────────────────────────


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    item_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    catalog_id = Column(GUID(), ForeignKey("item_catalog.catalog_id"), nullable=False)

    serial_number = Column(String(255))
    lot_number = Column(String(255))
    barcode = Column(String(255))

    # Decoded barcode attributes captured at check-in
    barcode_classification = Column(String(30))
    barcode_gtin = Column(String(14))
    barcode_parsed_lot = Column(String(255))
    barcode_parsed_serial = Column(String(255))
    barcode_parsed_expiration = Column(Date)

    location_id = Column(GUID(), ForeignKey("locations.location_id"), nullable=True)

    sterility_status = Column(String(20), nullable=False, default="NON_STERILE")
    sterility_expires_at = Column(Date, nullable=True)

    availability_status = Column(String(20), nullable=False, default="AVAILABLE")
    reserved_for_case_id = Column(GUID(), nullable=True)

    last_verified_at = Column(DateTime, nullable=True)
    last_verified_by_user_id = Column(GUID(), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("facility_id", "barcode", name="uq_inventory_barcode_per_facility"),
        Index("ix_inventory_items_facility", "facility_id"),
        Index("ix_inventory_items_serial", "facility_id", "serial_number"),
        CheckConstraint(_in_list("sterility_status", STERILITY_STATUSES), name="ck_item_sterility_status"),
        CheckConstraint(_in_list("availability_status", AVAILABILITY_STATUSES), name="ck_item_availability_status"),
        CheckConstraint(
            "(last_verified_at IS NULL) = (last_verified_by_user_id IS NULL)",
            name="ck_item_verification_pair",
        ),
    )

    catalog = relationship("ItemCatalog")
    location = relationship("Location")
    events = relationship("InventoryEvent", back_populates="item")


# ─── 7. Inventory Events (append-only) ──────────────────────────────────────


class InventoryEvent(Base):
    __tablename__ = "inventory_events"

    event_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    inventory_item_id = Column(GUID(), ForeignKey("inventory_items.item_id"), nullable=False)
    event_type = Column(String(30), nullable=False)
    case_id = Column(GUID(), nullable=True)
    location_id = Column(GUID(), ForeignKey("locations.location_id"), nullable=True)
    previous_location_id = Column(GUID(), nullable=True)
    sterility_status = Column(String(20), nullable=True)
    notes = Column(Text)
    performed_by_user_id = Column(GUID(), nullable=False)
    # Weak reference: relation only, no FK ownership
    device_event_id = Column(GUID(), nullable=True)
    occurred_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Financial attribution
    cost_snapshot_cents = Column(Integer, nullable=True)
    cost_override_cents = Column(Integer, nullable=True)
    cost_override_reason = Column(String(30), nullable=True)
    cost_override_note = Column(Text, nullable=True)
    provided_by_vendor_id = Column(GUID(), ForeignKey("vendors.vendor_id"), nullable=True)
    provided_by_rep_name = Column(String(255), nullable=True)
    is_gratis = Column(Boolean, nullable=False, default=False)
    gratis_reason = Column(String(30), nullable=True)

    __table_args__ = (
        Index("ix_inventory_events_item_occurred", "inventory_item_id", "occurred_at"),
        Index("ix_inventory_events_facility", "facility_id"),
        CheckConstraint(
            "cost_override_cents IS NULL OR cost_override_reason IS NOT NULL",
            name="chk_event_override_requires_reason",
        ),
        CheckConstraint("is_gratis = false OR gratis_reason IS NOT NULL", name="chk_event_gratis_requires_reason"),
        CheckConstraint(
            "cost_override_cents IS NULL OR cost_override_cents >= 0", name="chk_event_override_non_negative"
        ),
    )

    item = relationship("InventoryItem", back_populates="events")


# ─── 8. Devices ─────────────────────────────────────────────────────────────


class Device(Base):
    __tablename__ = "devices"

    device_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    name = Column(String(255), nullable=False)
    device_type = Column(String(20), nullable=False, default="barcode")
    location_id = Column(GUID(), ForeignKey("locations.location_id"), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    is_virtual = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_devices_facility", "facility_id"),
        CheckConstraint(_in_list("device_type", DEVICE_TYPES), name="ck_device_type"),
    )


# ─── 9. Device Events (append-only audit) ───────────────────────────────────


class DeviceEvent(Base):
    __tablename__ = "device_events"

    device_event_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    facility_id = Column(GUID(), ForeignKey("facilities.facility_id"), nullable=False)
    device_id = Column(GUID(), ForeignKey("devices.device_id"), nullable=False)
    device_type = Column(String(20), nullable=False)
    payload_type = Column(String(20), nullable=False)
    raw_value = Column(Text, nullable=False)
    processed_item_id = Column(GUID(), nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    processing_error = Column(Text, nullable=True)
    occurred_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_device_events_facility_occurred", "facility_id", "occurred_at"),
        CheckConstraint(_in_list("payload_type", PAYLOAD_TYPES), name="ck_device_event_payload_type"),
    )
