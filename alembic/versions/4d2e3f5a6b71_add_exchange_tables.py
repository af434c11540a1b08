"""add exchange request and record tables

Revision ID: 4d2e3f5a6b71
Revises: 3c1d2e4f5a60
Create Date: 2026-10-12 10:30:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '4d2e3f5a6b71'
down_revision: Union[str, None] = '3c1d2e4f5a60'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

exchange_status = sa.Enum(
    'pending', 'accepted', 'rejected', 'cancelled', 'expired',
    name='exchangestatus',
)


def upgrade() -> None:
    op.create_table(
        'exchange_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('coin_amount', sa.Integer(), nullable=False),
        sa.Column('status', exchange_status, nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('requester_id <> owner_id', name='ck_exchange_requests_not_self'),
        sa.CheckConstraint('coin_amount > 0', name='ck_exchange_requests_amount_positive'),
    )
    op.create_index('ix_exchange_requests_requester_id', 'exchange_requests', ['requester_id'])
    op.create_index('ix_exchange_requests_owner_id', 'exchange_requests', ['owner_id'])
    op.create_index('ix_exchange_requests_status_expires', 'exchange_requests', ['status', 'expires_at'])

    op.create_table(
        'exchange_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('exchange_request_id', sa.Integer(), sa.ForeignKey('exchange_requests.id'),
                  nullable=False, unique=True),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('from_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('to_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('coin_amount', sa.Integer(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_exchange_records_from_user_id', 'exchange_records', ['from_user_id'])
    op.create_index('ix_exchange_records_to_user_id', 'exchange_records', ['to_user_id'])


def downgrade() -> None:
    op.drop_index('ix_exchange_records_to_user_id', table_name='exchange_records')
    op.drop_index('ix_exchange_records_from_user_id', table_name='exchange_records')
    op.drop_table('exchange_records')
    op.drop_index('ix_exchange_requests_status_expires', table_name='exchange_requests')
    op.drop_index('ix_exchange_requests_owner_id', table_name='exchange_requests')
    op.drop_index('ix_exchange_requests_requester_id', table_name='exchange_requests')
    op.drop_table('exchange_requests')
    exchange_status.drop(op.get_bind(), checkfirst=True)
