"""Initial Connect schema: users, connected accounts, orders, refunds, webhook ledger

Revision ID: 7c2e9d41a0b3
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2e9d41a0b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('connected_accounts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('stripe_account_id', sa.String(length=255), nullable=False),
        sa.Column('charges_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payouts_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('details_submitted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('onboarding_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('country', sa.String(length=2), nullable=True),
        sa.Column('default_currency', sa.String(length=3), nullable=True),
        sa.Column('requirements', sa.JSON(), nullable=True),
        sa.Column('capabilities', sa.JSON(), nullable=True),
        sa.Column('livemode', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_account_id')
    )
    op.create_index('ix_connected_accounts_user_id', 'connected_accounts', ['user_id'])
    op.create_index(
        'ix_connected_accounts_charges_payouts',
        'connected_accounts',
        ['charges_enabled', 'payouts_enabled'],
    )

    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('buyer_id', sa.String(length=36), nullable=True),
        sa.Column('seller_account_id', sa.String(length=36), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=False),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('transfer_id', sa.String(length=255), nullable=True),
        sa.Column('charge_id', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('platform_fee', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='created'),
        sa.Column('payment_state', sa.String(length=20), nullable=False, server_default='processing'),
        sa.Column('amount_refunded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['seller_account_id'], ['connected_accounts.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_intent_id'),
        sa.UniqueConstraint('checkout_session_id'),
        sa.UniqueConstraint('transfer_id'),
        sa.UniqueConstraint('charge_id'),
        sa.CheckConstraint(
            'amount_refunded >= 0 AND amount_refunded <= amount',
            name='ck_orders_amount_refunded_range',
        )
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_seller_account_id', 'orders', ['seller_account_id'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index(
        'ix_orders_payment_state_created_at', 'orders', ['payment_state', 'created_at']
    )

    op.create_table('refunds',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('stripe_refund_id', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.String(length=64), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_refund_id')
    )
    op.create_index('ix_refunds_order_id_created_at', 'refunds', ['order_id', 'created_at'])

    op.create_table('webhook_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('livemode', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('api_version', sa.String(length=32), nullable=True),
        sa.Column('request_id', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_event_id')
    )
    op.create_index('ix_webhook_events_processed_at', 'webhook_events', ['processed_at'])
    op.create_index(
        'ix_webhook_events_type_created_at', 'webhook_events', ['event_type', 'created_at']
    )


def downgrade():
    op.drop_index('ix_webhook_events_type_created_at', table_name='webhook_events')
    op.drop_index('ix_webhook_events_processed_at', table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index('ix_refunds_order_id_created_at', table_name='refunds')
    op.drop_table('refunds')
    op.drop_index('ix_orders_payment_state_created_at', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_seller_account_id', table_name='orders')
    op.drop_index('ix_orders_buyer_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_connected_accounts_charges_payouts', table_name='connected_accounts')
    op.drop_index('ix_connected_accounts_user_id', table_name='connected_accounts')
    op.drop_table('connected_accounts')
    op.drop_table('users')
