"""settlement schema: orders, obligations, payouts, ledger, refunds, ratings, stock

Revision ID: 7c1e4b9a2d30
Revises:
Create Date: 2026-10-18 09:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c1e4b9a2d30'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(12, 2)


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_first_name', sa.String(length=120), nullable=False),
        sa.Column('customer_last_name', sa.String(length=120), nullable=False),
        sa.Column('customer_user_id', sa.String(length=64), nullable=True),
        sa.Column('shipping_address1', sa.String(length=200), nullable=True),
        sa.Column('shipping_address2', sa.String(length=200), nullable=True),
        sa.Column('shipping_city', sa.String(length=120), nullable=True),
        sa.Column('shipping_postcode', sa.String(length=32), nullable=True),
        sa.Column('shipping_country', sa.String(length=64), nullable=True),
        sa.Column('subtotal', MONEY, nullable=False, server_default='0'),
        sa.Column('shipping', MONEY, nullable=False, server_default='0'),
        sa.Column('processor_fees', MONEY, nullable=True),
        sa.Column('platform_fees', MONEY, nullable=True),
        sa.Column('payee_payments', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='GBP'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='stripe'),
        sa.Column('payment_reference', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='processing'),
        sa.Column('is_test', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refund_status', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('refunded_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('refund_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_refund_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index('ix_orders_order_number', ['order_number'], unique=True)
        batch_op.create_index('ix_orders_customer_email', ['customer_email'], unique=False)
        batch_op.create_index('ix_orders_customer_user_id', ['customer_user_id'], unique=False)
        batch_op.create_index('ix_orders_payment_reference', ['payment_reference'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='digital'),
        sa.Column('product_id', sa.String(length=64), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('payee_id', sa.String(length=64), nullable=True),
        sa.Column('payee_type', sa.String(length=16), nullable=True),
        sa.Column('unit_price', MONEY, nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('customer_price', MONEY, nullable=False, server_default='0'),
        sa.Column('processor_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('platform_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('payee_share', MONEY, nullable=False, server_default='0'),
        sa.Column('restocked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index('ix_order_items_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_order_items_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_order_items_payee_id', ['payee_id'], unique=False)

    op.create_table(
        'payees',
        sa.Column('payee_id', sa.String(length=64), nullable=False),
        sa.Column('payee_type', sa.String(length=16), nullable=False, server_default='artist'),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('payout_method', sa.String(length=16), nullable=True),
        sa.Column('stripe_connect_id', sa.String(length=64), nullable=True),
        sa.Column('stripe_connect_status', sa.String(length=24), nullable=True),
        sa.Column('paypal_email', sa.String(length=255), nullable=True),
        sa.Column('lifetime_earnings', MONEY, nullable=False, server_default='0'),
        sa.Column('last_payout_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('payee_id'),
    )

    op.create_table(
        'payee_obligations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('payee_id', sa.String(length=64), nullable=False),
        sa.Column('payee_type', sa.String(length=16), nullable=False, server_default='artist'),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='GBP'),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='pending'),
        sa.Column('payout_method', sa.String(length=16), nullable=True),
        sa.Column('external_ref', sa.String(length=120), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'payee_id', name='uq_obligation_order_payee'),
    )
    with op.batch_alter_table('payee_obligations', schema=None) as batch_op:
        batch_op.create_index('ix_payee_obligations_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_payee_obligations_payee_id', ['payee_id'], unique=False)
        batch_op.create_index('ix_payee_obligations_status', ['status'], unique=False)

    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('obligation_id', sa.Integer(), nullable=False),
        sa.Column('payee_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('gross_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('rail_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='GBP'),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('external_ref', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('timed_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['obligation_id'], ['payee_obligations.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('payouts', schema=None) as batch_op:
        batch_op.create_index('ix_payouts_obligation_id', ['obligation_id'], unique=False)
        batch_op.create_index('ix_payouts_payee_id', ['payee_id'], unique=False)
        batch_op.create_index('ix_payouts_order_id', ['order_id'], unique=False)

    op.create_table(
        'sales_ledger',
        sa.Column('order_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('day', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('subtotal', MONEY, nullable=False, server_default='0'),
        sa.Column('shipping', MONEY, nullable=False, server_default='0'),
        sa.Column('gross_total', MONEY, nullable=False, server_default='0'),
        sa.Column('processor_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('platform_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('total_fees', MONEY, nullable=False, server_default='0'),
        sa.Column('net_revenue', MONEY, nullable=False, server_default='0'),
        sa.Column('payee_payments', MONEY, nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='stripe'),
        sa.Column('payment_reference', sa.String(length=120), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='GBP'),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_physical', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_digital', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('items_json', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('migrated_from', sa.String(length=32), nullable=True),
        sa.Column('migrated_at', sa.DateTime(), nullable=True),
        sa.Column('fees_estimated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('order_id'),
    )
    with op.batch_alter_table('sales_ledger', schema=None) as batch_op:
        batch_op.create_index('ix_sales_ledger_year', ['year'], unique=False)
        batch_op.create_index('ix_sales_ledger_month', ['month'], unique=False)

    op.create_table(
        'refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='GBP'),
        sa.Column('reason', sa.String(length=64), nullable=False, server_default='requested_by_customer'),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('external_ref', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('is_full_refund', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refund_items', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('refunds', schema=None) as batch_op:
        batch_op.create_index('ix_refunds_order_id', ['order_id'], unique=False)

    op.create_table(
        'rating_aggregates',
        sa.Column('release_id', sa.String(length=64), nullable=False),
        sa.Column('average', sa.Numeric(4, 2), nullable=False, server_default='0'),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('five_star_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_rated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('release_id'),
    )

    op.create_table(
        'user_ratings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('release_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('release_id', 'user_id', name='uq_user_rating_release_user'),
    )
    with op.batch_alter_table('user_ratings', schema=None) as batch_op:
        batch_op.create_index('ix_user_ratings_release_id', ['release_id'], unique=False)
        batch_op.create_index('ix_user_ratings_user_id', ['user_id'], unique=False)

    op.create_table(
        'stock_levels',
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('product_id'),
    )

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('order_item_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='return'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('previous_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(length=240), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_item_id'),
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_order_id', ['order_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('target_type', sa.String(length=64), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('meta', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)

    op.create_table(
        'idempotency_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('route', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('request_hash', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('response_json', sa.Text(), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=False, server_default='200'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )


def downgrade():
    op.drop_table('idempotency_keys')
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_action')
    op.drop_table('audit_logs')
    op.drop_table('stock_movements')
    op.drop_table('stock_levels')
    op.drop_table('user_ratings')
    op.drop_table('rating_aggregates')
    op.drop_table('refunds')
    op.drop_table('sales_ledger')
    op.drop_table('payouts')
    op.drop_table('payee_obligations')
    op.drop_table('payees')
    op.drop_table('order_items')
    op.drop_table('orders')
