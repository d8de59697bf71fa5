"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the wholesale schema:
- users / session_tokens: accounts with approval gate and bearer sessions
- inventory_items: device + grade + storage variants, prices in cents
- orders: line snapshots, totals and the embedded invoice columns
- cart_items / wishlist_items: server copies of browser carts
- tax_rates: location rates in basis points
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('approval_status', sa.String(length=16), nullable=False),
        sa.Column('approval_status_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('business_address', sa.String(length=512), nullable=True),
        sa.Column('business_city', sa.String(length=128), nullable=True),
        sa.Column('business_state', sa.String(length=128), nullable=True),
        sa.Column('business_country', sa.String(length=64), nullable=True),
        sa.Column('business_years', sa.Integer(), nullable=True),
        sa.Column('business_website', sa.String(length=255), nullable=True),
        sa.Column('business_email', sa.String(length=255), nullable=True),
        sa.Column('shipping_address', sa.String(length=512), nullable=True),
        sa.Column('billing_address', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_approval_status', 'users', ['approval_status'])
    op.create_index('ix_users_role_approval', 'users', ['role', 'approval_status'])

    # ============================================================================
    # session_tokens
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_used_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # inventory_items
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_name', sa.String(length=255), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=True),
        sa.Column('grade', sa.String(length=1), nullable=False),
        sa.Column('storage', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_per_unit_cents', sa.Integer(), nullable=False),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('hst_bps', sa.Integer(), nullable=True),
        sa.Column('selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('price_change', sa.String(length=8), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_updated'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_name', 'grade', 'storage', name='uq_inventory_variant'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_brand', 'inventory_items', ['brand'])
    op.create_index('ix_inventory_brand_grade', 'inventory_items', ['brand', 'grade'])
    op.create_index('ix_inventory_active_created', 'inventory_items', ['is_active', 'created_at'])

    # ============================================================================
    # orders (with embedded invoice)
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=True),
        sa.Column('tax_cents', sa.Integer(), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=True),
        sa.Column('discount_percent', sa.Numeric(precision=7, scale=3), nullable=True),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_address', sa.String(length=512), nullable=True),
        sa.Column('billing_address', sa.String(length=512), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('rejection_comment', sa.Text(), nullable=True),
        sa.Column('invoice_number', sa.String(length=16), nullable=True),
        sa.Column('invoice_date', sa.Date(), nullable=True),
        sa.Column('po_number', sa.String(length=16), nullable=True),
        sa.Column('payment_terms', sa.String(length=16), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('hst_number', sa.String(length=64), nullable=True),
        sa.Column('invoice_notes', sa.Text(), nullable=True),
        sa.Column('invoice_terms', sa.Text(), nullable=True),
        sa.Column('invoice_confirmed', sa.Boolean(), nullable=False),
        sa.Column('invoice_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_user_status_created', 'orders', ['user_id', 'status', 'created_at'])
    op.create_index('ix_orders_invoice_number', 'orders', ['invoice_number'])

    # ============================================================================
    # cart_items / wishlist_items (item_id deliberately not a foreign key)
    # ============================================================================
    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'item_id', name='uq_cart_items_user_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cart_items_user_id', 'cart_items', ['user_id'])

    op.create_table(
        'wishlist_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'item_id', name='uq_wishlist_items_user_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_wishlist_items_user_id', 'wishlist_items', ['user_id'])

    # ============================================================================
    # tax_rates
    # ============================================================================
    op.create_table(
        'tax_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('country', sa.String(length=64), nullable=False),
        sa.Column('state_province', sa.String(length=128), nullable=False),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('rate_bps', sa.Integer(), nullable=False),
        sa.Column('tax_type', sa.String(length=32), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tax_rates_location', 'tax_rates', ['country', 'state_province', 'city'])


def downgrade():
    op.drop_index('ix_tax_rates_location', table_name='tax_rates')
    op.drop_table('tax_rates')

    op.drop_index('ix_wishlist_items_user_id', table_name='wishlist_items')
    op.drop_table('wishlist_items')
    op.drop_index('ix_cart_items_user_id', table_name='cart_items')
    op.drop_table('cart_items')

    for name in ('ix_orders_invoice_number', 'ix_orders_user_status_created', 'ix_orders_status', 'ix_orders_user_id'):
        op.drop_index(name, table_name='orders')
    op.drop_table('orders')

    for name in ('ix_inventory_active_created', 'ix_inventory_brand_grade', 'ix_inventory_items_brand'):
        op.drop_index(name, table_name='inventory_items')
    op.drop_table('inventory_items')

    for name in ('ix_session_tokens_user_active', 'ix_session_tokens_is_revoked', 'ix_session_tokens_expires_at',
                 'ix_session_tokens_token_hash', 'ix_session_tokens_user_id'):
        op.drop_index(name, table_name='session_tokens')
    op.drop_table('session_tokens')

    for name in ('ix_users_role_approval', 'ix_users_approval_status', 'ix_users_email'):
        op.drop_index(name, table_name='users')
    op.drop_table('users')
