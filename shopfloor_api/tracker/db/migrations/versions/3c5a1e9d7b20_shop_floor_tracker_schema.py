"""Shop-floor tracker schema: routing catalog, operators, production orders, travel sheets.

Tables:
- part_numbers
- work_centers
- processes
- part_routings
- operators
- production_orders
- travel_sheets
- travel_sheet_operations
- production_status_events

Types are kept portable (generic UUID, text statuses, client-side defaults) so the
same revision runs on PostgreSQL and SQLite.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c5a1e9d7b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Routing catalog
    op.create_table(
        "part_numbers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("part_number", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_part_numbers"),
        sa.UniqueConstraint("part_number", name="uq_part_numbers_part_number"),
    )

    op.create_table(
        "work_centers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_work_centers"),
        sa.UniqueConstraint("code", name="uq_work_centers_code"),
    )

    op.create_table(
        "processes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("work_center_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_processes"),
        sa.UniqueConstraint("code", name="uq_processes_code"),
        sa.ForeignKeyConstraint(
            ["work_center_id"], ["work_centers.id"], ondelete="SET NULL",
            name="fk_processes_work_center_id_work_centers",
        ),
    )

    op.create_table(
        "part_routings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("part_number_id", sa.Uuid(), nullable=False),
        sa.Column("process_id", sa.Uuid(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("standard_time_minutes", sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_part_routings"),
        sa.UniqueConstraint("part_number_id", "sequence_number", name="uq_part_routings_part_seq"),
        sa.ForeignKeyConstraint(
            ["part_number_id"], ["part_numbers.id"], ondelete="CASCADE",
            name="fk_part_routings_part_number_id_part_numbers",
        ),
        sa.ForeignKeyConstraint(
            ["process_id"], ["processes.id"], ondelete="RESTRICT",
            name="fk_part_routings_process_id_processes",
        ),
    )
    op.create_index("ix_part_routings_part_number_id", "part_routings", ["part_number_id"])

    # Operators
    op.create_table(
        "operators",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("badge_token", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("employee_number", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_operators"),
    )
    op.create_index("ix_operators_badge_token", "operators", ["badge_token"], unique=True)

    # Production orders
    op.create_table(
        "production_orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("po_number", sa.Text(), nullable=False),
        sa.Column("part_number_id", sa.Uuid(), nullable=False),
        sa.Column("sales_order_ref", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_completed", sa.Integer(), nullable=False),
        sa.Column("quantity_scrapped", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("priority", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_production_orders"),
        sa.UniqueConstraint("po_number", name="uq_production_orders_po_number"),
        sa.ForeignKeyConstraint(
            ["part_number_id"], ["part_numbers.id"], ondelete="RESTRICT",
            name="fk_production_orders_part_number_id_part_numbers",
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_production_orders_quantity_non_negative"),
        sa.CheckConstraint(
            "quantity_completed >= 0 AND quantity_scrapped >= 0",
            name="ck_production_orders_rollups_non_negative",
        ),
        sa.CheckConstraint(
            "quantity_completed + quantity_scrapped <= quantity",
            name="ck_production_orders_rollup_within_quantity",
        ),
    )
    op.create_index("ix_production_orders_part_number_id", "production_orders", ["part_number_id"])
    op.create_index("ix_production_orders_status", "production_orders", ["status"])

    # Travel sheets
    op.create_table(
        "travel_sheets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("travel_sheet_number", sa.Text(), nullable=False),
        sa.Column("production_order_id", sa.Uuid(), nullable=False),
        sa.Column("qr_code", sa.Text(), nullable=False),
        sa.Column("batch_number", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_travel_sheets"),
        sa.UniqueConstraint("travel_sheet_number", name="uq_travel_sheets_travel_sheet_number"),
        sa.UniqueConstraint("qr_code", name="uq_travel_sheets_qr_code"),
        sa.ForeignKeyConstraint(
            ["production_order_id"], ["production_orders.id"], ondelete="RESTRICT",
            name="fk_travel_sheets_production_order_id_production_orders",
        ),
    )
    op.create_index("ix_travel_sheets_production_order_id", "travel_sheets", ["production_order_id"])
    op.create_index("ix_travel_sheets_status", "travel_sheets", ["status"])

    op.create_table(
        "travel_sheet_operations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("travel_sheet_id", sa.Uuid(), nullable=False),
        sa.Column("process_id", sa.Uuid(), nullable=False),
        sa.Column("work_center_id", sa.Uuid(), nullable=True),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("standard_time_minutes", sa.Float(), nullable=True),
        sa.Column("checkpoint_token", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("operator_id", sa.Uuid(), nullable=True),
        sa.Column("machine_id", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Float(), nullable=True),
        sa.Column("quantity_good", sa.Integer(), nullable=False),
        sa.Column("quantity_scrap", sa.Integer(), nullable=False),
        sa.Column("quantity_pending", sa.Integer(), nullable=True),
        sa.Column("operator_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_travel_sheet_operations"),
        sa.UniqueConstraint(
            "travel_sheet_id", "sequence_number", name="uq_travel_sheet_operations_sheet_seq"
        ),
        sa.ForeignKeyConstraint(
            ["travel_sheet_id"], ["travel_sheets.id"], ondelete="CASCADE",
            name="fk_travel_sheet_operations_travel_sheet_id_travel_sheets",
        ),
        sa.ForeignKeyConstraint(
            ["process_id"], ["processes.id"], ondelete="RESTRICT",
            name="fk_travel_sheet_operations_process_id_processes",
        ),
        sa.ForeignKeyConstraint(
            ["work_center_id"], ["work_centers.id"], ondelete="SET NULL",
            name="fk_travel_sheet_operations_work_center_id_work_centers",
        ),
        sa.ForeignKeyConstraint(
            ["operator_id"], ["operators.id"], ondelete="RESTRICT",
            name="fk_travel_sheet_operations_operator_id_operators",
        ),
        sa.CheckConstraint(
            "quantity_good >= 0 AND quantity_scrap >= 0 AND (quantity_pending IS NULL OR quantity_pending >= 0)",
            name="ck_travel_sheet_operations_quantities_non_negative",
        ),
    )
    op.create_index(
        "ix_travel_sheet_operations_travel_sheet_id", "travel_sheet_operations", ["travel_sheet_id"]
    )
    op.create_index(
        "ix_travel_sheet_operations_checkpoint_token",
        "travel_sheet_operations",
        ["checkpoint_token"],
        unique=True,
    )

    # Status change log
    op.create_table(
        "production_status_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("reason_code", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("operator_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_production_status_events"),
    )
    op.create_index(
        "ix_production_status_events_entity_id", "production_status_events", ["entity_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_production_status_events_entity_id", table_name="production_status_events")
    op.drop_table("production_status_events")
    op.drop_index("ix_travel_sheet_operations_checkpoint_token", table_name="travel_sheet_operations")
    op.drop_index("ix_travel_sheet_operations_travel_sheet_id", table_name="travel_sheet_operations")
    op.drop_table("travel_sheet_operations")
    op.drop_index("ix_travel_sheets_status", table_name="travel_sheets")
    op.drop_index("ix_travel_sheets_production_order_id", table_name="travel_sheets")
    op.drop_table("travel_sheets")
    op.drop_index("ix_production_orders_status", table_name="production_orders")
    op.drop_index("ix_production_orders_part_number_id", table_name="production_orders")
    op.drop_table("production_orders")
    op.drop_index("ix_operators_badge_token", table_name="operators")
    op.drop_table("operators")
    op.drop_index("ix_part_routings_part_number_id", table_name="part_routings")
    op.drop_table("part_routings")
    op.drop_table("processes")
    op.drop_table("work_centers")
    op.drop_table("part_numbers")
