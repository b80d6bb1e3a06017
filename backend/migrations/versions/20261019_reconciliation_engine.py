"""Add reconciliation ledgers: intents, transition records, stock movements, adjustments

Revision ID: 20261019_reconciliation
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_reconciliation"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reconciliation_intents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("from_value", sa.String(64), nullable=True),
        sa.Column("to_value", sa.String(64), nullable=True),
        sa.Column("expected_version", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("order_total", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("stock_plan", sa.JSON(), nullable=False),
        sa.Column("balance_plan", sa.JSON(), nullable=False),
        sa.Column("stock_applied", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_applied", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("order_updated", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("reconciliation_intents", schema=None) as batch_op:
        batch_op.create_index("ix_reconciliation_intents_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_reconciliation_intents_status", ["status"], unique=False)
        batch_op.create_index("ix_intents_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "transition_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("from_value", sa.String(64), nullable=True),
        sa.Column("to_value", sa.String(64), nullable=True),
        sa.Column("applied", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("intent_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["intent_id"], ["reconciliation_intents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("transition_records", schema=None) as batch_op:
        batch_op.create_index("ix_transition_records_order_id", ["order_id"], unique=False)
        batch_op.create_index(
            "ix_transition_records_lookup", ["order_id", "kind", "from_value", "to_value"], unique=False
        )
        batch_op.create_index(
            "ix_transition_records_active", ["order_id", "kind", "superseded_at"], unique=False
        )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity_delta", sa.Numeric(14, 4), nullable=False),
        sa.Column("balance_before", sa.Numeric(14, 4), nullable=True),
        sa.Column("balance_after", sa.Numeric(14, 4), nullable=True),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("order_number", sa.String(64), nullable=True),
        sa.Column("intent_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["intent_id"], ["reconciliation_intents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_stock_movements_intent_id", ["intent_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_created", ["product_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_order", ["order_id"], unique=False)

    op.create_table(
        "adjustment_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=True),
        sa.Column("request_key", sa.String(128), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("refund_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("restocked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_key", name="uq_adjustment_records_request_key"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("adjustment_records", schema=None) as batch_op:
        batch_op.create_index("ix_adjustment_records_order_id", ["order_id"], unique=False)


def downgrade():
    with op.batch_alter_table("adjustment_records", schema=None) as batch_op:
        batch_op.drop_index("ix_adjustment_records_order_id")
    op.drop_table("adjustment_records")

    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.drop_index("ix_stock_movements_order")
        batch_op.drop_index("ix_stock_movements_product_created")
        batch_op.drop_index("ix_stock_movements_intent_id")
        batch_op.drop_index("ix_stock_movements_movement_type")
        batch_op.drop_index("ix_stock_movements_product_id")
    op.drop_table("stock_movements")

    with op.batch_alter_table("transition_records", schema=None) as batch_op:
        batch_op.drop_index("ix_transition_records_active")
        batch_op.drop_index("ix_transition_records_lookup")
        batch_op.drop_index("ix_transition_records_order_id")
    op.drop_table("transition_records")

    with op.batch_alter_table("reconciliation_intents", schema=None) as batch_op:
        batch_op.drop_index("ix_intents_status_created")
        batch_op.drop_index("ix_reconciliation_intents_status")
        batch_op.drop_index("ix_reconciliation_intents_order_id")
    op.drop_table("reconciliation_intents")
