"""initial possync schema

Revision ID: p1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the local POS schema:
- cached_products / cached_customers: read-through cache of upstream data,
  keyed by the upstream ids
- pos_orders / pos_order_lines: durable local order ledger with sync state
- stock_adjustments: append-only stock audit ledger
- pos_settings: upstream connection settings
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # cached_products: upstream product cache (id = upstream id)
    # ============================================================================
    op.create_table(
        'cached_products',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('regular_price_cents', sa.Integer(), nullable=True),
        sa.Column('sale_price_cents', sa.Integer(), nullable=True),
        sa.Column('on_sale', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='publish'),
        sa.Column('stock_status', sa.String(length=16), nullable=False, server_default='in_stock'),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('categories', sa.JSON(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('weight', sa.String(length=32), nullable=True),
        sa.Column('dimensions', sa.JSON(), nullable=True),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cached_products_sku', 'cached_products', ['sku'])
    op.create_index('ix_cached_products_name', 'cached_products', ['name'])

    # ============================================================================
    # cached_customers: upstream customer cache (id = upstream id)
    # ============================================================================
    op.create_table(
        'cached_customers',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('username', sa.String(length=128), nullable=True),
        sa.Column('billing', sa.JSON(), nullable=True),
        sa.Column('shipping', sa.JSON(), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=True),
        sa.Column('orders_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cached_customers_email', 'cached_customers', ['email'])

    # ============================================================================
    # pos_orders: local order ledger
    # ============================================================================
    op.create_table(
        'pos_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=True),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cashier_id', sa.String(length=64), nullable=False),
        sa.Column('cashier_name', sa.String(length=255), nullable=False),
        sa.Column('receipt_printed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sync_status', sa.String(length=16), nullable=False, server_default='UNSYNCED'),
        sa.Column('upstream_order_id', sa.Integer(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync_error', sa.String(length=512), nullable=True),
        sa.Column('last_sync_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_claim_token', sa.String(length=32), nullable=True),
        sa.Column('sync_claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_pos_orders_order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pos_orders_customer_id', 'pos_orders', ['customer_id'])
    op.create_index('ix_pos_orders_sync_status', 'pos_orders', ['sync_status'])
    op.create_index('ix_pos_orders_created_at', 'pos_orders', ['created_at'])
    op.create_index('ix_pos_orders_sync_created', 'pos_orders', ['sync_status', 'created_at'])

    # ============================================================================
    # pos_order_lines: frozen line snapshots (no FK to cached_products)
    # ============================================================================
    op.create_table(
        'pos_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['pos_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pos_order_lines_order_id', 'pos_order_lines', ['order_id'])

    # ============================================================================
    # stock_adjustments: append-only stock audit ledger
    # ============================================================================
    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('adjustment_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('quantity_before', sa.Integer(), nullable=False),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'])
    op.create_index('ix_stock_adjustments_product_created', 'stock_adjustments', ['product_id', 'created_at'])

    # ============================================================================
    # pos_settings: upstream connection settings
    # ============================================================================
    op.create_table(
        'pos_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_url', sa.String(length=512), nullable=False),
        sa.Column('consumer_key', sa.String(length=255), nullable=False),
        sa.Column('consumer_secret', sa.String(length=255), nullable=False),
        sa.Column('cache_duration_minutes', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('auto_refresh', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('catalog_miss_policy', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('pos_settings')
    op.drop_index('ix_stock_adjustments_product_created', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_product_id', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')
    op.drop_index('ix_pos_order_lines_order_id', table_name='pos_order_lines')
    op.drop_table('pos_order_lines')
    op.drop_index('ix_pos_orders_sync_created', table_name='pos_orders')
    op.drop_index('ix_pos_orders_created_at', table_name='pos_orders')
    op.drop_index('ix_pos_orders_sync_status', table_name='pos_orders')
    op.drop_index('ix_pos_orders_customer_id', table_name='pos_orders')
    op.drop_table('pos_orders')
    op.drop_index('ix_cached_customers_email', table_name='cached_customers')
    op.drop_table('cached_customers')
    op.drop_index('ix_cached_products_name', table_name='cached_products')
    op.drop_index('ix_cached_products_sku', table_name='cached_products')
    op.drop_table('cached_products')
