"""initial inventory ledger schema

Revision ID: 3c1a9e7f2b40
Revises:
Create Date: 2026-10-18 09:12:44.318207
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3c1a9e7f2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

quality_status = sa.Enum('GOOD', 'DAMAGED', 'EXPIRED', 'QUARANTINE', 'RETURNED', name='qualitystatus')
movement_type = sa.Enum(
    'INBOUND', 'OUTBOUND', 'TRANSFER', 'ADJUSTMENT', 'RETURN', 'DAMAGED', 'EXPIRED',
    'CYCLE_COUNT', 'PRODUCTION', 'CONSUMPTION',
    name='stockmovementtype',
)
movement_reason = sa.Enum(
    'PURCHASE_ORDER', 'SALES_ORDER', 'TRANSFER_ORDER', 'MANUAL_ADJUSTMENT', 'CUSTOMER_RETURN',
    'SUPPLIER_RETURN', 'DAMAGED_GOODS', 'EXPIRED_GOODS', 'CYCLE_COUNT', 'PRODUCTION_INPUT',
    'PRODUCTION_OUTPUT', 'STOCK_LOSS', 'STOCK_FOUND', 'CORRECTION', 'ORDER_CANCELLATION', 'OTHER',
    name='movementreason',
)
movement_status = sa.Enum('PENDING', 'COMPLETED', 'CANCELLED', 'FAILED', name='movementstatus')
reference_type = sa.Enum(
    'PURCHASE_ORDER', 'SALES_ORDER', 'TRANSFER_ORDER', 'ADJUSTMENT', 'RETURN', 'PRODUCTION_ORDER',
    'STOCK_MOVEMENT',
    name='referencetype',
)
order_status = sa.Enum('PENDING', 'PROCESSING', 'SHIPPED', 'FULFILLED', 'CANCELLED', 'RETURNED', name='orderstatus')


def audit_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'products',
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('selling_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('minimum_stock_level', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_products_id', 'products', ['id'])
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)

    op.create_table(
        'warehouses',
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=50), nullable=True),
        sa.Column('country', sa.String(length=50), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_warehouses_id', 'warehouses', ['id'])
    op.create_index('ix_warehouses_code', 'warehouses', ['code'], unique=True)
    op.create_index('ix_warehouses_company_id', 'warehouses', ['company_id'])

    op.create_table(
        'stock_records',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False),
        sa.Column('available_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('minimum_quantity', sa.Integer(), nullable=False),
        sa.Column('quality_status', quality_status, nullable=False),
        sa.Column('batch_number', sa.String(length=50), nullable=True),
        sa.Column('lot_number', sa.String(length=50), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *audit_columns(),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_records_product_warehouse'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_records_quantity_non_negative'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_stock_records_reserved_non_negative'),
        sa.CheckConstraint('reserved_quantity <= quantity', name='ck_stock_records_reserved_within_quantity'),
    )
    op.create_index('ix_stock_records_id', 'stock_records', ['id'])
    op.create_index('ix_stock_records_product_id', 'stock_records', ['product_id'])
    op.create_index('ix_stock_records_warehouse_id', 'stock_records', ['warehouse_id'])

    op.create_table(
        'stock_movements',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('from_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=True),
        sa.Column('to_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=True),
        sa.Column('stock_record_id', sa.Integer(), sa.ForeignKey('stock_records.id', ondelete='SET NULL'), nullable=True),
        sa.Column('movement_type', movement_type, nullable=False),
        sa.Column('reason', movement_reason, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('before_quantity', sa.Integer(), nullable=False),
        sa.Column('after_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('batch_number', sa.String(length=50), nullable=True),
        sa.Column('lot_number', sa.String(length=50), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('reference_type', reference_type, nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', movement_status, nullable=False),
        sa.Column('processed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_stock_movements_id', 'stock_movements', ['id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_stock_record_id', 'stock_movements', ['stock_record_id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    op.create_table(
        'stock_record_history',
        sa.Column('stock_record_id', sa.Integer(), sa.ForeignKey('stock_records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('movement_id', sa.Integer(), sa.ForeignKey('stock_movements.id', ondelete='SET NULL'), nullable=True),
        sa.Column('change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_stock_record_history_id', 'stock_record_history', ['id'])
    op.create_index('ix_stock_record_history_stock_record_id', 'stock_record_history', ['stock_record_id'])

    op.create_table(
        'orders',
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('customer_name', sa.String(length=200), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)

    op.create_table(
        'order_items',
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('line_index', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=True),
        *audit_columns(),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    print("✓ [3c1a9e7f2b40] Created inventory ledger tables")


def downgrade() -> None:
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('stock_record_history')
    op.drop_table('stock_movements')
    op.drop_table('stock_records')
    op.drop_table('warehouses')
    op.drop_table('products')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in (order_status, reference_type, movement_status, movement_reason, movement_type, quality_status):
        enum.drop(bind, checkfirst=True)
