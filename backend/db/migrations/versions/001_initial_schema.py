"""
Initial schema - facilities, catalog policy, inventory truth-state, devices

Revision ID: 001
Revises: None
Create Date: 2026-10-12
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

FACILITY_SCOPED_TABLES = [
    "locations",
    "vendors",
    "item_catalog",
    "catalog_identifiers",
    "inventory_items",
    "inventory_events",
    "devices",
    "device_events",
]


def _pk(name: str) -> sa.Column:
    return sa.Column(name, UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _facility_fk() -> sa.Column:
    return sa.Column("facility_id", UUID(as_uuid=True), sa.ForeignKey("facilities.facility_id"), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    # 1. Facilities
    op.create_table(
        "facilities",
        _pk("facility_id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        _created_at(),
        sa.CheckConstraint("status IN ('active', 'inactive', 'demo')", name="ck_facility_status"),
    )

    # 2. Locations
    op.create_table(
        "locations",
        _pk("location_id"),
        _facility_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint("facility_id", "name", name="uq_location_name_per_facility"),
    )
    op.create_index("ix_locations_facility", "locations", ["facility_id"])

    # 3. Vendors
    op.create_table(
        "vendors",
        _pk("vendor_id"),
        _facility_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("vendor_type", sa.String(30), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint("facility_id", "name", name="uq_vendor_name_per_facility"),
        sa.CheckConstraint(
            "vendor_type IN ('MANUFACTURER', 'DISTRIBUTOR', 'LOANER_PROVIDER', 'CONSIGNMENT')",
            name="ck_vendor_type",
        ),
    )

    # 4. Item catalog
    op.create_table(
        "item_catalog",
        _pk("catalog_id"),
        _facility_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("manufacturer", sa.String(255)),
        sa.Column("requires_sterility", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("requires_lot_tracking", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("requires_serial_tracking", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("requires_expiration_tracking", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("criticality", sa.String(20), nullable=False, server_default="ROUTINE"),
        sa.Column("expiration_warning_days", sa.Integer),
        sa.Column("unit_cost_cents", sa.Integer),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint(
            "category IN ('IMPLANT', 'INSTRUMENT', 'LOANER', 'HIGH_VALUE_SUPPLY')", name="ck_catalog_category"
        ),
        sa.CheckConstraint("unit_cost_cents IS NULL OR unit_cost_cents >= 0", name="ck_catalog_unit_cost"),
    )
    op.create_index("ix_item_catalog_facility", "item_catalog", ["facility_id"])

    # 5. Catalog identifiers
    op.create_table(
        "catalog_identifiers",
        _pk("identifier_id"),
        _facility_fk(),
        sa.Column("catalog_id", UUID(as_uuid=True), sa.ForeignKey("item_catalog.catalog_id"), nullable=False),
        sa.Column("identifier_type", sa.String(20), nullable=False),
        sa.Column("raw_value", sa.String(255), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("classification", sa.String(30), nullable=False, server_default="unknown"),
        _created_at(),
        sa.UniqueConstraint("facility_id", "catalog_id", "identifier_type", "raw_value", name="uq_catalog_identifier"),
        sa.CheckConstraint("identifier_type IN ('REF', 'GTIN', 'BARCODE', 'UPC')", name="ck_identifier_type"),
    )
    op.create_index(
        "ix_catalog_identifier_lookup", "catalog_identifiers", ["facility_id", "identifier_type", "raw_value"]
    )

    # 6. Inventory items (projection)
    op.create_table(
        "inventory_items",
        _pk("item_id"),
        _facility_fk(),
        sa.Column("catalog_id", UUID(as_uuid=True), sa.ForeignKey("item_catalog.catalog_id"), nullable=False),
        sa.Column("serial_number", sa.String(255)),
        sa.Column("lot_number", sa.String(255)),
        sa.Column("barcode", sa.String(255)),
        sa.Column("barcode_classification", sa.String(30)),
        sa.Column("barcode_gtin", sa.String(14)),
        sa.Column("barcode_parsed_lot", sa.String(255)),
        sa.Column("barcode_parsed_serial", sa.String(255)),
        sa.Column("barcode_parsed_expiration", sa.Date),
        sa.Column("location_id", UUID(as_uuid=True), sa.ForeignKey("locations.location_id")),
        sa.Column("sterility_status", sa.String(20), nullable=False, server_default="NON_STERILE"),
        sa.Column("sterility_expires_at", sa.Date),
        sa.Column("availability_status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        sa.Column("reserved_for_case_id", UUID(as_uuid=True)),
        sa.Column("last_verified_at", sa.DateTime),
        sa.Column("last_verified_by_user_id", UUID(as_uuid=True)),
        _created_at(),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("facility_id", "barcode", name="uq_inventory_barcode_per_facility"),
        sa.CheckConstraint(
            "sterility_status IN ('STERILE', 'NON_STERILE', 'EXPIRED')", name="ck_item_sterility_status"
        ),
        sa.CheckConstraint(
            "availability_status IN ('AVAILABLE', 'RESERVED', 'UNAVAILABLE', 'MISSING')",
            name="ck_item_availability_status",
        ),
        sa.CheckConstraint(
            "(last_verified_at IS NULL) = (last_verified_by_user_id IS NULL)", name="ck_item_verification_pair"
        ),
    )
    op.create_index("ix_inventory_items_facility", "inventory_items", ["facility_id"])
    op.create_index("ix_inventory_items_serial", "inventory_items", ["facility_id", "serial_number"])

    # 7. Inventory events (append-only)
    op.create_table(
        "inventory_events",
        _pk("event_id"),
        _facility_fk(),
        sa.Column("inventory_item_id", UUID(as_uuid=True), sa.ForeignKey("inventory_items.item_id"), nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("case_id", UUID(as_uuid=True)),
        sa.Column("location_id", UUID(as_uuid=True), sa.ForeignKey("locations.location_id")),
        sa.Column("previous_location_id", UUID(as_uuid=True)),
        sa.Column("sterility_status", sa.String(20)),
        sa.Column("notes", sa.Text),
        sa.Column("performed_by_user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("device_event_id", UUID(as_uuid=True)),
        sa.Column("occurred_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        _created_at(),
        sa.Column("cost_snapshot_cents", sa.Integer),
        sa.Column("cost_override_cents", sa.Integer),
        sa.Column("cost_override_reason", sa.String(30)),
        sa.Column("cost_override_note", sa.Text),
        sa.Column("provided_by_vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.vendor_id")),
        sa.Column("provided_by_rep_name", sa.String(255)),
        sa.Column("is_gratis", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("gratis_reason", sa.String(30)),
        sa.CheckConstraint(
            "cost_override_cents IS NULL OR cost_override_reason IS NOT NULL",
            name="chk_event_override_requires_reason",
        ),
        sa.CheckConstraint("is_gratis = false OR gratis_reason IS NOT NULL", name="chk_event_gratis_requires_reason"),
        sa.CheckConstraint(
            "cost_override_cents IS NULL OR cost_override_cents >= 0", name="chk_event_override_non_negative"
        ),
    )
    op.create_index("ix_inventory_events_item_occurred", "inventory_events", ["inventory_item_id", "occurred_at"])
    op.create_index("ix_inventory_events_facility", "inventory_events", ["facility_id"])

    # 8. Devices
    op.create_table(
        "devices",
        _pk("device_id"),
        _facility_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("device_type", sa.String(20), nullable=False, server_default="barcode"),
        sa.Column("location_id", UUID(as_uuid=True), sa.ForeignKey("locations.location_id")),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_virtual", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint("device_type IN ('barcode', 'rfid', 'nfc', 'other')", name="ck_device_type"),
    )
    op.create_index("ix_devices_facility", "devices", ["facility_id"])

    # 9. Device events (append-only audit)
    op.create_table(
        "device_events",
        _pk("device_event_id"),
        _facility_fk(),
        sa.Column("device_id", UUID(as_uuid=True), sa.ForeignKey("devices.device_id"), nullable=False),
        sa.Column("device_type", sa.String(20), nullable=False),
        sa.Column("payload_type", sa.String(20), nullable=False),
        sa.Column("raw_value", sa.Text, nullable=False),
        sa.Column("processed_item_id", UUID(as_uuid=True)),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processing_error", sa.Text),
        sa.Column("occurred_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        _created_at(),
        sa.CheckConstraint("payload_type IN ('scan', 'presence', 'input')", name="ck_device_event_payload_type"),
    )
    op.create_index("ix_device_events_facility_occurred", "device_events", ["facility_id", "occurred_at"])

    # Row-level security keyed on the per-request facility setting (api/deps.py)
    for table in FACILITY_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY facility_isolation ON {table} "
            f"USING (facility_id::text = current_setting('app.current_facility_id', true))"
        )


def downgrade() -> None:
    for table in FACILITY_SCOPED_TABLES:
        op.execute(f"DROP POLICY IF EXISTS facility_isolation ON {table}")
    for table in reversed(FACILITY_SCOPED_TABLES):
        op.drop_table(table)
    op.drop_table("facilities")
