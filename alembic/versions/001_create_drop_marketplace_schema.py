"""Create drop marketplace schema

Revision ID: 001_drop_marketplace
Revises:
Create Date: 2026-10-19

Tables:
- supplier_lists, products, product_variants
- pickup_points, profiles, user_interests
- drops, drop_status_history
- bookings
- orders, order_items, order_status_history
- notifications
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_drop_marketplace'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def upgrade():
    """Create catalog, drop, booking and fulfillment tables"""

    # ====================
    # CATALOG
    # ====================
    op.create_table(
        'supplier_lists',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('supplier_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('min_discount', sa.Numeric(5, 2), nullable=False),
        sa.Column('max_discount', sa.Numeric(5, 2), nullable=False),
        sa.Column('min_reservation_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('max_reservation_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(50), server_default='ACTIVE', nullable=False,
                  comment='ACTIVE, INACTIVE, ARCHIVED'),
        *_timestamps(),
        sa.CheckConstraint('min_discount >= 0 AND max_discount <= 100', name='ck_supplier_lists_discount_range'),
        sa.CheckConstraint('min_discount <= max_discount', name='ck_supplier_lists_discount_order'),
        sa.CheckConstraint(
            'min_reservation_value > 0 AND min_reservation_value < max_reservation_value',
            name='ck_supplier_lists_value_order',
        ),
    )
    op.create_index('ix_supplier_lists_supplier_id', 'supplier_lists', ['supplier_id'])

    op.create_table(
        'products',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('supplier_list_id', UUID(as_uuid=True),
                  sa.ForeignKey('supplier_lists.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('brand', sa.String(100), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('condition', sa.String(50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('additional_images', sa.JSON(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('available_sizes', sa.JSON(), nullable=True),
        sa.Column('available_colors', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_index('ix_products_supplier_list_id', 'products', ['supplier_list_id'])
    op.create_index('ix_products_list_sku', 'products', ['supplier_list_id', 'sku'])

    op.create_table(
        'product_variants',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('size', sa.String(50), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='ACTIVE', nullable=False, comment='ACTIVE, INACTIVE'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'size', 'color', name='uq_product_variants_product_size_color'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    # ====================
    # PICKUP POINTS & PROFILES
    # ====================
    op.create_table(
        'pickup_points',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('postal_code', sa.String(20), nullable=True),
        sa.Column('manager_name', sa.String(200), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='ACTIVE', nullable=False, comment='ACTIVE, INACTIVE'),
        sa.Column('commission_rate', sa.Numeric(5, 4), server_default='0.05', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_pickup_points_city', 'pickup_points', ['city'])

    op.create_table(
        'profiles',
        sa.Column('user_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'user_interests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('supplier_list_id', UUID(as_uuid=True),
                  sa.ForeignKey('supplier_lists.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pickup_point_id', UUID(as_uuid=True),
                  sa.ForeignKey('pickup_points.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('user_id', 'product_id', 'pickup_point_id', name='uq_user_interests_user_product_pickup'),
    )
    op.create_index('ix_user_interests_user_id', 'user_interests', ['user_id'])
    op.create_index('ix_user_interests_list_pickup', 'user_interests', ['supplier_list_id', 'pickup_point_id'])

    # ====================
    # DROPS
    # ====================
    op.create_table(
        'drops',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('supplier_list_id', UUID(as_uuid=True),
                  sa.ForeignKey('supplier_lists.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('pickup_point_id', UUID(as_uuid=True),
                  sa.ForeignKey('pickup_points.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(50), server_default='PENDING_APPROVAL', nullable=False,
                  comment='PENDING_APPROVAL, APPROVED, ACTIVE, INACTIVE, COMPLETED, EXPIRED, CANCELLED, UNDERFUNDED'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_value', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('current_discount', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('target_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivated_by', UUID(as_uuid=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('underfunded_notified_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('current_value >= 0', name='ck_drops_value_non_negative'),
    )
    op.create_index('ix_drops_supplier_list_id', 'drops', ['supplier_list_id'])
    op.create_index('ix_drops_pickup_point_id', 'drops', ['pickup_point_id'])
    op.create_index('ix_drops_status', 'drops', ['status'])
    op.create_index('ix_drops_end_time', 'drops', ['end_time'])
    # At most one open drop per list and pickup point
    op.create_index(
        'uq_drops_open_per_list_pickup',
        'drops',
        ['supplier_list_id', 'pickup_point_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING_APPROVAL', 'APPROVED', 'ACTIVE', 'INACTIVE')"),
    )

    op.create_table(
        'drop_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('drop_id', UUID(as_uuid=True), sa.ForeignKey('drops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_drop_status_history_drop_id', 'drop_status_history', ['drop_id'])

    # ====================
    # BOOKINGS
    # ====================
    op.create_table(
        'bookings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('drop_id', UUID(as_uuid=True), sa.ForeignKey('drops.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('variant_id', UUID(as_uuid=True),
                  sa.ForeignKey('product_variants.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('selected_size', sa.String(50), nullable=True),
        sa.Column('selected_color', sa.String(50), nullable=True),
        sa.Column('original_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('authorized_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('final_discount_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('final_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('payment_status', sa.String(20), server_default='AUTHORIZED', nullable=False,
                  comment='AUTHORIZED, CAPTURED, REFUNDED, CANCELLED'),
        sa.Column('payment_token', sa.String(100), nullable=True),
        sa.Column('payment_receipt', sa.String(100), nullable=True),
        sa.Column('idempotency_key', sa.String(100), unique=True, nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('release_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_product_id', 'bookings', ['product_id'])
    op.create_index('ix_bookings_drop_status', 'bookings', ['drop_id', 'payment_status'])

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_number', sa.String(30), unique=True, nullable=False),
        sa.Column('drop_id', UUID(as_uuid=True),
                  sa.ForeignKey('drops.id', ondelete='RESTRICT'), unique=True, nullable=False),
        sa.Column('supplier_id', UUID(as_uuid=True), nullable=False),
        sa.Column('supplier_list_id', UUID(as_uuid=True),
                  sa.ForeignKey('supplier_lists.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('pickup_point_id', UUID(as_uuid=True),
                  sa.ForeignKey('pickup_points.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(50), server_default='CONFIRMED', nullable=False,
                  comment='PENDING, CONFIRMED, IN_TRANSIT, ARRIVED, READY_FOR_PICKUP, COMPLETED, CANCELLED'),
        sa.Column('total_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('commission_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('item_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('arrived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ready_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_supplier_id', 'orders', ['supplier_id'])
    op.create_index('ix_orders_pickup_point_id', 'orders', ['pickup_point_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('booking_id', UUID(as_uuid=True),
                  sa.ForeignKey('bookings.id', ondelete='RESTRICT'), unique=True, nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('variant_id', UUID(as_uuid=True), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('selected_size', sa.String(50), nullable=True),
        sa.Column('selected_color', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer(), server_default='1', nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('pickup_status', sa.String(20), server_default='PENDING', nullable=False,
                  comment='PENDING, READY, PICKED_UP'),
        sa.Column('customer_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_to_sender', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('return_reason', sa.Text(), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_user_id', 'order_items', ['user_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    # ====================
    # NOTIFICATIONS
    # ====================
    op.create_table(
        'notifications',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('notification_type', sa.String(50), server_default='SYSTEM', nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_id', UUID(as_uuid=True), nullable=True),
        sa.Column('related_type', sa.String(50), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_user_unread', 'notifications', ['user_id', 'is_read'])


def downgrade():
    """Drop all marketplace tables"""
    op.drop_table('notifications')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('bookings')
    op.drop_table('drop_status_history')
    op.drop_table('drops')
    op.drop_table('user_interests')
    op.drop_table('profiles')
    op.drop_table('pickup_points')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('supplier_lists')
