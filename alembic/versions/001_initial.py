"""Initial schema: report history and current lowest prices.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Report history (append-only)
    op.create_table(
        'price_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prod_id', sa.String(length=128), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('reporter_token', sa.String(length=64), nullable=False),
        sa.Column('page_type', sa.String(length=32), nullable=True),
        sa.Column('client_observed_at', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_price_reports_prod_price_created',
        'price_reports',
        ['prod_id', 'price', 'created_at'],
    )

    # Current lowest price per product
    op.create_table(
        'lowest_prices',
        sa.Column('prod_id', sa.String(length=128), nullable=False),
        sa.Column('min_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('trust_level', sa.SmallInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('prod_id'),
    )


def downgrade() -> None:
    op.drop_table('lowest_prices')
    op.drop_index('ix_price_reports_prod_price_created', table_name='price_reports')
    op.drop_table('price_reports')
