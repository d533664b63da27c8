"""orders, order_items and order_status_history

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(20), nullable=False),
        sa.Column('order_group_id', sa.String(8), nullable=True),
        sa.Column('parent_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='AED'),
        sa.Column('vendor_id', sa.String(36), nullable=True),
        sa.Column('vendor', sa.JSON, nullable=True),
        sa.Column('user', sa.JSON, nullable=True),
        sa.Column('order_status', sa.String(30), nullable=False, server_default='order_received'),
        sa.Column('payment_status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('shipment_status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('transaction_details', sa.Text, nullable=True),
        sa.Column('shipment_details', sa.Text, nullable=True),
        sa.Column('invoice_comments', sa.Text, nullable=True),
        sa.Column('total_amount', sa.Numeric(12,2), nullable=False, server_default='0'),
        sa.Column('group_total_amount', sa.Numeric(12,2), nullable=True),
        sa.Column('vat_amount', sa.Numeric(12,2), nullable=False, server_default='0'),
        sa.Column('total_shipping', sa.Numeric(12,2), nullable=False, server_default='0'),
        sa.Column('total_packing', sa.Numeric(12,2), nullable=False, server_default='0'),
        sa.Column('admin_commission', sa.Numeric(12,2), nullable=True),
        sa.Column('calculated_admin_commission', sa.Numeric(12,2), nullable=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('idx_orders_order_id', 'orders', ['order_id'])
    op.create_index('idx_orders_order_group_id', 'orders', ['order_group_id'])
    op.create_index('idx_orders_parent_id', 'orders', ['parent_id'])
    op.create_index('idx_orders_vendor_id', 'orders', ['vendor_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=True),
        sa.Column('sku', sa.String(50), nullable=True),
        sa.Column('product_name', sa.String(200), nullable=True),
        sa.Column('vendor_id', sa.String(36), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(12,2), nullable=False),
        sa.Column('base_price', sa.Numeric(12,2), nullable=True),
        sa.Column('weight_value', sa.Numeric(10,3), nullable=True),
        sa.Column('product_snapshot', sa.JSON, nullable=True),
    )
    op.create_index('idx_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('updated_by', sa.String(36), nullable=True),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('payment_status', sa.String(30), nullable=False),
        sa.Column('shipment_status', sa.String(30), nullable=False),
    )
    op.create_index('idx_order_status_history_order_id', 'order_status_history', ['order_id'])

def downgrade():
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
