"""Materials core schema.

- storage_locations (self-referencing hierarchy)
- materials
- batch_lots, material_reservations, inventory_transactions
- material_valuations
- material_demands, mrp_runs, material_requirements

Enumerations are stored as short strings so the schema also runs on SQLite.
Primary keys are generated by the application.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1d8e5a7b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


NOW = sa.text("CURRENT_TIMESTAMP")
QTY = sa.Numeric(18, 6)
ENUM = sa.String(32)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    ]


def upgrade() -> None:
    # STORAGE
    op.create_table(
        "storage_locations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", ENUM, nullable=False),
        sa.Column("parent_id", sa.Uuid(), nullable=True),
        sa.Column("capacity", QTY, nullable=True),
        sa.Column("capacity_unit", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_storage_locations"),
        sa.ForeignKeyConstraint(
            ["parent_id"], ["storage_locations.id"], ondelete="RESTRICT",
            name="fk_storage_locations_parent_id_storage_locations",
        ),
        sa.UniqueConstraint("code", name="uq_storage_locations_code"),
    )
    op.create_index("ix_storage_locations_parent_id", "storage_locations", ["parent_id"])

    # CATALOG
    op.create_table(
        "materials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("material_type", ENUM, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("price", QTY, nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("lead_time_days", sa.Integer(), nullable=True),
        sa.Column("reorder_point", QTY, nullable=True),
        sa.Column("economic_order_quantity", QTY, nullable=True),
        sa.Column("order_multiple", QTY, nullable=True),
        sa.Column("safety_stock", QTY, nullable=False),
        sa.Column("min_stock", QTY, nullable=True),
        sa.Column("max_stock", QTY, nullable=True),
        sa.Column("default_location_id", sa.Uuid(), nullable=True),
        sa.Column("default_valuation_method", ENUM, nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("is_lot_tracked", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("shelf_life_days", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_materials"),
        sa.ForeignKeyConstraint(
            ["default_location_id"], ["storage_locations.id"], ondelete="SET NULL",
            name="fk_materials_default_location_id_storage_locations",
        ),
        sa.UniqueConstraint("code", name="uq_materials_code"),
    )

    # LOT LEDGER
    op.create_table(
        "batch_lots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("batch_number", sa.Text(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("remaining_quantity", QTY, nullable=False),
        sa.Column("reserved_quantity", QTY, nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("manufacture_date", sa.Date(), nullable=True),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("received_date", sa.Date(), nullable=False),
        sa.Column("unit_cost", QTY, nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("vendor_id", sa.Uuid(), nullable=True),
        sa.Column("parent_lot_id", sa.Uuid(), nullable=True),
        sa.Column("quality_status", sa.Text(), nullable=False),
        sa.Column("hold_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_batch_lots"),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="RESTRICT",
            name="fk_batch_lots_material_id_materials",
        ),
        sa.ForeignKeyConstraint(
            ["location_id"], ["storage_locations.id"], ondelete="SET NULL",
            name="fk_batch_lots_location_id_storage_locations",
        ),
        sa.ForeignKeyConstraint(
            ["parent_lot_id"], ["batch_lots.id"], ondelete="SET NULL",
            name="fk_batch_lots_parent_lot_id_batch_lots",
        ),
        sa.UniqueConstraint("batch_number", name="uq_batch_lots_batch_number"),
        sa.CheckConstraint("quantity > 0", name="ck_batch_lots_quantity_positive"),
        sa.CheckConstraint("remaining_quantity >= 0", name="ck_batch_lots_remaining_non_negative"),
        sa.CheckConstraint("remaining_quantity <= quantity", name="ck_batch_lots_remaining_within_total"),
        sa.CheckConstraint("reserved_quantity >= 0", name="ck_batch_lots_reserved_non_negative"),
        sa.CheckConstraint(
            "reserved_quantity <= remaining_quantity", name="ck_batch_lots_reserved_within_remaining"
        ),
    )
    op.create_index("ix_batch_lots_material_id", "batch_lots", ["material_id"])
    op.create_index("ix_batch_lots_location_id", "batch_lots", ["location_id"])

    op.create_table(
        "material_reservations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("batch_lot_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("fulfilled_quantity", QTY, nullable=False),
        sa.Column("reference_type", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.Text(), nullable=True),
        sa.Column("status", ENUM, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_material_reservations"),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="RESTRICT",
            name="fk_material_reservations_material_id_materials",
        ),
        sa.ForeignKeyConstraint(
            ["batch_lot_id"], ["batch_lots.id"], ondelete="CASCADE",
            name="fk_material_reservations_batch_lot_id_batch_lots",
        ),
    )
    op.create_index("ix_material_reservations_material_id", "material_reservations", ["material_id"])
    op.create_index("ix_material_reservations_batch_lot_id", "material_reservations", ["batch_lot_id"])

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lot_id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("txn_type", ENUM, nullable=False),
        sa.Column("txn_date", sa.Date(), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("held_quantity", QTY, nullable=False),
        sa.Column("unit_cost", QTY, nullable=True),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("ref_type", sa.Text(), nullable=True),
        sa.Column("ref_id", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_transactions"),
        sa.ForeignKeyConstraint(
            ["lot_id"], ["batch_lots.id"], ondelete="CASCADE",
            name="fk_inventory_transactions_lot_id_batch_lots",
        ),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="RESTRICT",
            name="fk_inventory_transactions_material_id_materials",
        ),
        sa.ForeignKeyConstraint(
            ["location_id"], ["storage_locations.id"], ondelete="SET NULL",
            name="fk_inventory_transactions_location_id_storage_locations",
        ),
    )
    op.create_index("ix_inventory_transactions_lot_id", "inventory_transactions", ["lot_id"])
    op.create_index("ix_inventory_transactions_material_id", "inventory_transactions", ["material_id"])

    # VALUATION
    op.create_table(
        "material_valuations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("method", ENUM, nullable=False),
        sa.Column("valuation_date", sa.Date(), nullable=False),
        sa.Column("unit_value", QTY, nullable=False),
        sa.Column("total_value", QTY, nullable=False),
        sa.Column("quantity_basis", QTY, nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("batch_lot_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("previous_unit_value", QTY, nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("variance_amount", QTY, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_material_valuations"),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="CASCADE",
            name="fk_material_valuations_material_id_materials",
        ),
        sa.ForeignKeyConstraint(
            ["batch_lot_id"], ["batch_lots.id"], ondelete="SET NULL",
            name="fk_material_valuations_batch_lot_id_batch_lots",
        ),
    )
    op.create_index(
        "ix_material_valuations_lookup", "material_valuations", ["material_id", "method", "is_active"]
    )

    # PLANNING
    op.create_table(
        "material_demands",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("need_date", sa.Date(), nullable=False),
        sa.Column("source_type", ENUM, nullable=False),
        sa.Column("source_id", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_material_demands"),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="CASCADE",
            name="fk_material_demands_material_id_materials",
        ),
    )
    op.create_index(
        "ix_material_demands_material_need_date", "material_demands", ["material_id", "need_date"]
    )

    op.create_table(
        "mrp_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_name", sa.Text(), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("horizon_start", sa.Date(), nullable=False),
        sa.Column("horizon_end", sa.Date(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("consider_safety_stock", sa.Boolean(), nullable=False),
        sa.Column("consider_current_inventory", sa.Boolean(), nullable=False),
        sa.Column("consider_lead_times", sa.Boolean(), nullable=False),
        sa.Column("consider_batch_sizes", sa.Boolean(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("materials_planned", sa.Integer(), nullable=False),
        sa.Column("materials_skipped", sa.Integer(), nullable=False),
        sa.Column("materials_failed", sa.Integer(), nullable=False),
        sa.Column("requirements_created", sa.Integer(), nullable=False),
        sa.Column("log_details", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_mrp_runs"),
    )

    op.create_table(
        "material_requirements",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("mrp_run_id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("requirement_date", sa.Date(), nullable=False),
        sa.Column("required_quantity", QTY, nullable=False),
        sa.Column("available_quantity", QTY, nullable=False),
        sa.Column("net_requirement", QTY, nullable=False),
        sa.Column("planned_order_quantity", QTY, nullable=False),
        sa.Column("planned_release_date", sa.Date(), nullable=False),
        sa.Column("uom", sa.Text(), nullable=False),
        sa.Column("source_type", sa.Text(), nullable=True),
        sa.Column("source_id", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("lead_time_days", sa.Integer(), nullable=False),
        sa.Column("safety_stock_level", QTY, nullable=False),
        sa.Column("economic_order_quantity", QTY, nullable=True),
        sa.Column("is_late", sa.Boolean(), nullable=False),
        sa.Column("action_message", sa.Text(), nullable=True),
        sa.Column("estimated_unit_cost", QTY, nullable=True),
        sa.Column("estimated_cost", QTY, nullable=True),
        sa.Column("converted_order_type", sa.Text(), nullable=True),
        sa.Column("converted_order_id", sa.Text(), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_material_requirements"),
        sa.ForeignKeyConstraint(
            ["mrp_run_id"], ["mrp_runs.id"], ondelete="CASCADE",
            name="fk_material_requirements_mrp_run_id_mrp_runs",
        ),
        sa.ForeignKeyConstraint(
            ["material_id"], ["materials.id"], ondelete="CASCADE",
            name="fk_material_requirements_material_id_materials",
        ),
    )
    op.create_index("ix_material_requirements_mrp_run_id", "material_requirements", ["mrp_run_id"])
    op.create_index(
        "ix_material_requirements_material_current", "material_requirements", ["material_id", "is_current"]
    )


def downgrade() -> None:
    # Reverse dependency order
    op.drop_table("material_requirements")
    op.drop_table("mrp_runs")
    op.drop_table("material_demands")
    op.drop_table("material_valuations")
    op.drop_table("inventory_transactions")
    op.drop_table("material_reservations")
    op.drop_table("batch_lots")
    op.drop_table("materials")
    op.drop_table("storage_locations")
