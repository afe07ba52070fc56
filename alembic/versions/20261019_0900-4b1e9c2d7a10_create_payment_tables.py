"""create_payment_tables

Revision ID: 4b1e9c2d7a10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1e9c2d7a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'payment_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('merchant_order_id', sa.String(length=64), nullable=False, comment='Merchant order id'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='Amount in minor units (paise)'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='ISO-4217 currency code'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING', comment='PENDING/SUCCESS/FAILED/ERROR'),
        sa.Column('gateway_transaction_id', sa.String(length=128), nullable=True, comment='Gateway transaction id'),
        sa.Column('gateway_order_id', sa.String(length=128), nullable=True, comment='Gateway order id returned at checkout'),
        sa.Column('redirect_url', sa.String(length=1024), nullable=True, comment='Checkout redirect target'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='Caller supplied metadata'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_payment_orders'),
        sa.CheckConstraint("status IN ('PENDING', 'SUCCESS', 'FAILED', 'ERROR')", name='ck_payment_orders_status'),
        sa.CheckConstraint('amount > 0', name='ck_payment_orders_amount_positive'),
    )
    op.create_index('ix_payment_orders_id', 'payment_orders', ['id'], unique=False)
    op.create_index('ix_payment_orders_merchant_order_id', 'payment_orders', ['merchant_order_id'], unique=True)
    op.create_index('ix_payment_orders_status', 'payment_orders', ['status'], unique=False)
    op.create_index('ix_payment_orders_gateway_transaction_id', 'payment_orders', ['gateway_transaction_id'], unique=False)
    op.create_index('ix_payment_orders_status_updated', 'payment_orders', ['status', 'last_updated_at'], unique=False)

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('merchant_order_id', sa.String(length=64), nullable=True),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('raw_payload', sa.LargeBinary(), nullable=False),
        sa.Column('signature_header', sa.String(length=256), nullable=False, server_default=''),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('state', sa.String(length=16), nullable=True, comment='Canonical status carried by the event'),
        sa.Column('gateway_code', sa.String(length=64), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=True),
        sa.Column('outcome', sa.String(length=16), nullable=True, comment='applied/duplicate/ignored/stale/unknown_order'),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_events'),
    )
    op.create_index('ix_webhook_events_id', 'webhook_events', ['id'], unique=False)
    op.create_index('ix_webhook_events_merchant_order_id', 'webhook_events', ['merchant_order_id'], unique=False)
    op.create_index('ix_webhook_events_transaction_id', 'webhook_events', ['transaction_id'], unique=False)

    op.create_table(
        'webhook_claims',
        sa.Column('dedupe_key', sa.String(length=128), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('dedupe_key', name='pk_webhook_claims'),
    )


def downgrade() -> None:
    op.drop_table('webhook_claims')

    op.drop_index('ix_webhook_events_transaction_id', table_name='webhook_events')
    op.drop_index('ix_webhook_events_merchant_order_id', table_name='webhook_events')
    op.drop_index('ix_webhook_events_id', table_name='webhook_events')
    op.drop_table('webhook_events')

    op.drop_index('ix_payment_orders_status_updated', table_name='payment_orders')
    op.drop_index('ix_payment_orders_gateway_transaction_id', table_name='payment_orders')
    op.drop_index('ix_payment_orders_status', table_name='payment_orders')
    op.drop_index('ix_payment_orders_merchant_order_id', table_name='payment_orders')
    op.drop_index('ix_payment_orders_id', table_name='payment_orders')
    op.drop_table('payment_orders')
