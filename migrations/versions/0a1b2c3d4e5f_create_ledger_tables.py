"""create ledger tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "0a1b2c3d4e5f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _aggregate_columns(entity_kind):
    return [
        sa.Column("kind", entity_kind, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("total_balance", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("total_debit", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("total_credit", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("last_activity_date", sa.String(length=10), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    ]


def upgrade() -> None:
    # Create enum types FIRST; both entity tables share entitykind
    bind = op.get_bind()
    postgresql.ENUM("customer", "supplier", "expense", name="entitykind").create(bind, checkfirst=True)
    postgresql.ENUM("sale", "purchase", "payment", "expense", name="entrykind").create(bind, checkfirst=True)
    entity_kind = postgresql.ENUM(name="entitykind", create_type=False)
    entry_kind = postgresql.ENUM(name="entrykind", create_type=False)

    op.create_table(
        "entities",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        *_aggregate_columns(entity_kind),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_entities_user_id", "entities", ["user_id"])

    op.create_table(
        "user_entities",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=20), nullable=False),
        *_aggregate_columns(entity_kind),
        sa.PrimaryKeyConstraint("user_id", "entity_id"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_id", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("kind", entry_kind, nullable=False),
        sa.Column("amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("profit", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("parent_name", sa.String(length=255), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ledger_entries_entity_id", "ledger_entries", ["entity_id"])
    op.create_index("ix_ledger_entries_user_id", "ledger_entries", ["user_id"])
    op.create_index("ix_ledger_entries_date", "ledger_entries", ["date"])
    op.create_index("ix_ledger_entries_is_deleted", "ledger_entries", ["is_deleted"])

    op.create_table(
        "ledger_line_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entry_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_id", sa.String(length=20), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("unit_cost", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("line_total", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.ForeignKeyConstraint(["entry_id"], ["ledger_entries.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ledger_line_items_entry_id", "ledger_line_items", ["entry_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(precision=15, scale=2), nullable=False, server_default="0"),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_user_id", "products", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_products_user_id", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_ledger_line_items_entry_id", table_name="ledger_line_items")
    op.drop_table("ledger_line_items")
    for index in ("is_deleted", "date", "user_id", "entity_id"):
        op.drop_index(f"ix_ledger_entries_{index}", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("user_entities")
    op.drop_index("ix_entities_user_id", table_name="entities")
    op.drop_table("entities")
    postgresql.ENUM(name="entrykind").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="entitykind").drop(op.get_bind(), checkfirst=True)
