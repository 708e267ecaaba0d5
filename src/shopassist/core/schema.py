"""Application tables the search gateway is allowed to read.

The gateway never writes. These definitions exist so the safety validator
has an allow-list, the synthesis prompt can describe the schema, and tests
can build a realistic database.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("customer_name", String(255), comment="full display name; use this, not 'name'"),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("phone_primary", String(20)),
    Column("phone_secondary", String(20)),
    Column("phone_mobile", String(20)),
    Column("email", String(255)),
    Column("address_line1", Text),
    Column("address_line2", Text),
    Column("city", String(100)),
    Column("state", String(50)),
    Column("zip", String(20)),
    Column("customer_type", String(50)),
    Column("notes", Text),
    Column("is_active", Boolean, default=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

vehicles = Table(
    "vehicles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("customer_id", Integer, ForeignKey("customers.id")),
    Column("vin", String(17)),
    Column("year", Integer),
    Column("make", String(100)),
    Column("model", String(100)),
    Column("submodel", String(100)),
    Column("engine", String(100)),
    Column("transmission", String(100)),
    Column("color", String(50)),
    Column("mileage", Integer),
    Column("license_plate", String(20)),
    Column("license_plate_state", String(10)),
    Column("is_active", Boolean, default=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

work_orders = Table(
    "work_orders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("ro_number", String(50), unique=True),
    Column("customer_id", Integer, ForeignKey("customers.id")),
    Column("vehicle_id", Integer, ForeignKey("vehicles.id")),
    Column("state", String(50), comment="estimate, in_progress, completed, invoiced, paid"),
    Column("date_opened", Date),
    Column("date_promised", Date),
    Column("date_closed", Date),
    Column("customer_concern", Text),
    Column("label", String(255)),
    Column("needs_attention", Boolean),
    Column("labor_total", Numeric(10, 2)),
    Column("parts_total", Numeric(10, 2)),
    Column("sublets_total", Numeric(10, 2)),
    Column("tax_amount", Numeric(10, 2)),
    Column("total", Numeric(10, 2)),
    Column("payment_status", String(50)),
    Column("amount_paid", Numeric(10, 2)),
    Column("is_active", Boolean, default=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

work_order_items = Table(
    "work_order_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("work_order_id", Integer, ForeignKey("work_orders.id")),
    Column("item_type", String(20), comment="labor, part, sublet"),
    Column("description", Text),
    Column("quantity", Integer),
    Column("unit_price", Numeric(10, 2)),
    Column("line_total", Numeric(10, 2)),
    Column("part_number", String(100)),
    Column("technician_id", Integer),
    Column("created_at", DateTime),
)

APPLICATION_TABLES: frozenset[str] = frozenset(metadata.tables)
