"""storefront checkout and payments

Revision ID: 5b2c8e41d7a0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b2c8e41d7a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('assembly_available', sa.Boolean(), nullable=False),
        sa.Column('assembly_price', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_is_active', 'products', ['is_active'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('color', sa.String(length=100), nullable=True),
        sa.Column('size', sa.String(length=100), nullable=True),
        sa.Column('material', sa.String(length=100), nullable=True),
        sa.Column('price', sa.BigInteger(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_product_variants_price_non_negative'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'],
            name='fk_product_variants_product_id_products', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_product_variants'),
        sa.UniqueConstraint('product_id', 'sku', name='uq_product_variants_product_sku'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'carts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True, comment='owner when authenticated'),
        sa.Column('guest_token', sa.String(length=128), nullable=True, comment='owner when anonymous'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_carts'),
        sa.UniqueConstraint('user_id', name='uq_carts_user_id'),
        sa.UniqueConstraint('guest_token', name='uq_carts_guest_token'),
    )

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cart_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('variant_sku', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('assembly_selected', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id'], name='fk_cart_items_cart_id_carts', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_cart_items'),
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('vat_amount', sa.BigInteger(), nullable=False),
        sa.Column('assembly_total', sa.BigInteger(), nullable=False),
        sa.Column('delivery_price', sa.BigInteger(), nullable=False),
        sa.Column('grand_total', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, comment='fulfillment status'),
        sa.Column('payment_id', sa.String(length=36), nullable=True),
        sa.Column('delivery_address', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_id', 'orders', ['payment_id'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False),
        sa.Column('price_snapshot', sa.BigInteger(), nullable=False),
        sa.Column('variant_sku', sa.String(length=100), nullable=False),
        sa.Column('variant_color', sa.String(length=100), nullable=True),
        sa.Column('variant_size', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('assembly_selected', sa.Boolean(), nullable=False),
        sa.Column('assembly_price_snapshot', sa.BigInteger(), nullable=False),
        sa.Column('total_item_price', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False, comment='payme/click/uzum'),
        sa.Column('transaction_id', sa.String(length=128), nullable=True, comment='provider transaction id'),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, comment='pending/processing/completed/failed/refunded'),
        sa.Column('provider_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sa.UniqueConstraint('transaction_id', name='uq_payments_transaction_id'),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])
    op.create_index('ix_payments_status_updated_at', 'payments', ['status', 'updated_at'])

    op.create_table(
        'provider_transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('transaction_id', sa.String(length=128), nullable=False),
        sa.Column('service_id', sa.String(length=64), nullable=False),
        sa.Column('account', sa.String(length=128), nullable=False, comment='merchant transaction id'),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_id', sa.String(length=36), nullable=True),
        sa.Column('trans_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirm_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reverse_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_source', sa.String(length=64), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('card_type', sa.String(length=32), nullable=True),
        sa.Column('processing_reference_number', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_provider_transactions'),
        sa.UniqueConstraint('transaction_id', name='uq_provider_transactions_transaction_id'),
    )
    op.create_index('ix_provider_transactions_account', 'provider_transactions', ['account'])
    op.create_index('ix_provider_transactions_payment_id', 'provider_transactions', ['payment_id'])


def downgrade() -> None:
    op.drop_table('provider_transactions')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('product_variants')
    op.drop_table('products')
