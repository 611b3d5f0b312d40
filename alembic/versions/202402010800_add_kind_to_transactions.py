"""add_kind_to_transactions

Revision ID: 202402010800
Revises: 202401150900
Create Date: 2024-02-01 08:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202402010800"
down_revision = "202401150900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 0 = expense, 1 = income, 2 = refund
    with op.batch_alter_table("transactions") as batch_op:
        batch_op.add_column(
            sa.Column("kind", sa.Integer(), nullable=False, server_default="0")
        )


def downgrade() -> None:
    with op.batch_alter_table("transactions") as batch_op:
        batch_op.drop_column("kind")
