"""Create trades and positions tables

Revision ID: 4c2f1a9d7e10
Revises:
Create Date: 2025-07-22 09:14:51.402113

"""
from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

# revision identifiers, used by Alembic.
revision: str = '4c2f1a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the append-only `trades` ledger, ordered by its autoincrement
    `seq`, and the `positions` table keyed by symbol.
    """
    op.create_table(
        'trades',
        sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('symbol', sa.String(length=32), nullable=False),
        sa.Column('side', sa.String(length=4), nullable=False),
        sa.Column('quantity', sa.BigInteger(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.PrimaryKeyConstraint('seq')
    )
    op.create_index(op.f('ix_trades_id'), 'trades', ['id'], unique=True)
    op.create_index(op.f('ix_trades_symbol'), 'trades', ['symbol'], unique=False)
    op.create_index(op.f('ix_trades_date'), 'trades', ['date'], unique=False)

    op.create_table(
        'positions',
        sa.Column('symbol', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.BigInteger(), nullable=False),
        sa.Column('avg_cost', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('symbol')
    )


def downgrade() -> None:
    """
    Drop both tables.
    """
    op.drop_table('positions')
    op.drop_index(op.f('ix_trades_date'), table_name='trades')
    op.drop_index(op.f('ix_trades_symbol'), table_name='trades')
    op.drop_index(op.f('ix_trades_id'), table_name='trades')
    op.drop_table('trades')
