"""initial schema

Revision ID: 202401150900
Revises:
Create Date: 2024-01-15 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202401150900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
    )
    op.create_index(
        "uq_categories_name_lower",
        "categories",
        [sa.text("lower(name)")],
        unique=True,
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("date", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Text(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("cost_cents", sa.Integer(), nullable=False),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])


def downgrade():
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_categories_name_lower", table_name="categories")
    op.drop_table("categories")
