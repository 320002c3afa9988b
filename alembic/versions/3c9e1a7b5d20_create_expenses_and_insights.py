"""create expenses and insights tables

Revision ID: 3c9e1a7b5d20
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c9e1a7b5d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "expenses_expense",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("merchant", sa.String(length=100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=True),
        sa.Column("discounts", sa.Numeric(12, 2), nullable=True),
        sa.Column("fees", sa.Numeric(12, 2), nullable=True),
        sa.Column("tip", sa.Numeric(12, 2), nullable=True),
        sa.Column("items_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("extraction_confidence", sa.Float(), nullable=True),
        sa.Column("prompt_version", sa.Integer(), nullable=True),
    )
    op.create_index("ix_expenses_expense_expense_date", "expenses_expense", ["expense_date"])
    op.create_index("ix_expenses_expense_merchant", "expenses_expense", ["merchant"])
    op.create_index("ix_expenses_expense_category", "expenses_expense", ["category"])

    op.create_table(
        "expenses_line_item",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "expense_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("expenses_expense.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=True),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_expenses_line_item_expense_id", "expenses_line_item", ["expense_id"])

    op.create_table(
        "insights_state",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("snapshot_json", sa.JSON(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_record_count", sa.Integer(), nullable=False),
    )
    op.create_index("ix_insights_state_name", "insights_state", ["name"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_insights_state_name", table_name="insights_state")
    op.drop_table("insights_state")
    op.drop_index("ix_expenses_line_item_expense_id", table_name="expenses_line_item")
    op.drop_table("expenses_line_item")
    op.drop_index("ix_expenses_expense_category", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_merchant", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_expense_date", table_name="expenses_expense")
    op.drop_table("expenses_expense")
