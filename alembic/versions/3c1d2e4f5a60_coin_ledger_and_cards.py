"""coin ledger and cards

Revision ID: 3c1d2e4f5a60
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3c1d2e4f5a60'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

coin_reason = sa.Enum(
    'card_created', 'card_exchanged', 'daily_login', 'exchange_purchase', 'exchange_refund',
    name='coinreason',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('nickname', sa.String(length=100), nullable=True),
        sa.Column('coin_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('initial_coin_grant', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exchange_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('coin_balance >= 0', name='ck_users_coin_balance_non_negative'),
    )
    op.create_table(
        'cards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('base_price', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('like_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exchange_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_cards_owner_id', 'cards', ['owner_id'])
    op.create_table(
        'card_collections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('collected_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'card_id', name='uq_collection_user_card'),
    )
    op.create_table(
        'coin_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', coin_reason, nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_coin_transactions_user_created', 'coin_transactions', ['user_id', 'created_at'])
    op.create_index('ix_coin_transactions_reference_id', 'coin_transactions', ['reference_id'])


def downgrade() -> None:
    op.drop_index('ix_coin_transactions_reference_id', table_name='coin_transactions')
    op.drop_index('ix_coin_transactions_user_created', table_name='coin_transactions')
    op.drop_table('coin_transactions')
    op.drop_table('card_collections')
    op.drop_index('ix_cards_owner_id', table_name='cards')
    op.drop_table('cards')
    op.drop_table('users')
    coin_reason.drop(op.get_bind(), checkfirst=True)
