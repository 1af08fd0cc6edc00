"""Backfill zero-amount sale ledger entries with their sale's total

Revision ID: 0002_backfill_zero_sales
Revises: 0001_initial
Create Date: 2026-10-17 09:30:00.000000

Databases imported from the previous system carry sale transactions
recorded with amount 0. Same repair as
`flask maintenance backfill-zero-sale-transactions`, applied once on upgrade.
Not reversible: the original zero amounts are not kept.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_backfill_zero_sales"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not (inspector.has_table("cash_transactions") and inspector.has_table("sales")):
        return

    op.execute(
        sa.text(
            """
            UPDATE cash_transactions
            SET amount_cents = (
                SELECT sales.total_cents FROM sales WHERE sales.id = cash_transactions.sale_id
            )
            WHERE type = 'sale'
              AND amount_cents = 0
              AND sale_id IS NOT NULL
              AND EXISTS (
                  SELECT 1 FROM sales
                  WHERE sales.id = cash_transactions.sale_id AND sales.total_cents > 0
              )
            """
        )
    )


def downgrade():
    pass
