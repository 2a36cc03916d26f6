"""create_purchase_tables

Revision ID: 202510180000
Revises:
Create Date: 2025-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '202510180000'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create event, catalog, purchase and audit tables"""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_super_user', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_events_slug', 'events', ['slug'], unique=True)

    op.create_table(
        'activities',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('speaker', sa.String(200), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('has_unlimited_capacity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_capacity', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('is_mandatory', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_fee', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_activities_event_id', 'activities', ['event_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_int', sa.Integer(), nullable=False),
        sa.Column('max_ownable_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_event_access', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_activity_access', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_activity_token', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_physical_item', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_ticket_type', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('token_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_unlimited_quantity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
    )
    op.create_index('ix_products_event_id', 'products', ['event_id'])

    op.create_table(
        'access_targets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('target_id', sa.String(36), nullable=False),
        sa.Column('is_event', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_access_targets_product_id', 'access_targets', ['product_id'])
    op.create_index('ix_access_targets_target_id', 'access_targets', ['target_id'])

    op.create_table(
        'event_registrations',
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('registered_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'activity_registrations',
        sa.Column('activity_id', sa.String(36), sa.ForeignKey('activities.id'), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('access_method', sa.Enum('EVENT', 'PRODUCT', 'TOKEN', 'DIRECT', name='accessmethod'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('token_id', sa.String(36), nullable=True),
        sa.Column('is_standalone_registration', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('attended_at', sa.DateTime(), nullable=True),
        sa.Column('registered_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'purchases',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('is_gift', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('gifted_to_email', sa.String(255), nullable=True),
        sa.Column('settlement_method', sa.Enum('CARD', 'PIX', name='settlementmethod'), nullable=False),
        sa.Column('payment_method_id', sa.String(50), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('amount_int', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('FULFILLED', 'DELIVERED', 'REFUNDED', name='purchasestatus'), nullable=False),
        sa.Column('is_delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('purchased_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_purchases_user_id', 'purchases', ['user_id'])
    op.create_index('ix_purchases_product_id', 'purchases', ['product_id'])
    op.create_index('ix_purchases_payment_reference', 'purchases', ['payment_reference'])

    op.create_table(
        'user_products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('purchase_id', sa.String(36), sa.ForeignKey('purchases.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('received_as_gift', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('gifted_from_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_user_products_user_id', 'user_products', ['user_id'])
    op.create_index('ix_user_products_product_id', 'user_products', ['product_id'])
    op.create_index('ix_user_products_purchase_id', 'user_products', ['purchase_id'])

    op.create_table(
        'user_tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('user_product_id', sa.String(36), sa.ForeignKey('user_products.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('used_for_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_user_tokens_user_id', 'user_tokens', ['user_id'])
    op.create_index('ix_user_tokens_event_id', 'user_tokens', ['event_id'])
    op.create_index('ix_user_tokens_user_product_id', 'user_tokens', ['user_product_id'])
    op.create_index('ix_user_tokens_product_id', 'user_tokens', ['product_id'])

    op.create_table(
        'pending_pix_purchases',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('payment_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('event_id', sa.String(36), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('is_gift', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('gifted_to_email', sa.String(255), nullable=True),
        sa.Column('amount_int', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_pending_pix_purchases_payment_id', 'pending_pix_purchases', ['payment_id'], unique=True)
    op.create_index('ix_pending_pix_purchases_user_id', 'pending_pix_purchases', ['user_id'])
    op.create_index('ix_pending_pix_purchases_expires_at', 'pending_pix_purchases', ['expires_at'])

    op.create_table(
        'failed_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('payment_id', sa.String(100), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=True),
        sa.Column('amount', sa.String(20), nullable=False),
        sa.Column('purchase_data', sa.JSON(), nullable=True),
        sa.Column('db_error', sa.Text(), nullable=False),
        sa.Column('refund_error', sa.Text(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('MANUAL_INTERVENTION_REQUIRED', 'RESOLVED', name='failedtransactionstatus'),
            nullable=False
        ),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_failed_transactions_payment_id', 'failed_transactions', ['payment_id'])
    op.create_index('ix_failed_transactions_user_id', 'failed_transactions', ['user_id'])
    op.create_index('ix_failed_transactions_status', 'failed_transactions', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'event_type',
            sa.Enum(
                'PURCHASE_FULFILLED', 'PURCHASE_REFUNDED', 'PURCHASE_MANUAL_INTERVENTION',
                'PIX_PAYMENT_REQUESTED', 'PIX_PURCHASE_FINALIZED', 'PIX_FINALIZATION_FAILED',
                'PIX_PURCHASES_EXPIRED', 'WEBHOOK_PROCESSED', 'WEBHOOK_SIGNATURE_REJECTED',
                'UNHANDLED_EXCEPTION',
                name='auditeventtype'
            ),
            nullable=False
        ),
        sa.Column('event_level', sa.Enum('INFO', 'WARNING', 'ERROR', 'CRITICAL', name='auditlevel'), nullable=False),
        sa.Column('event_message', sa.Text(), nullable=False),
        sa.Column('event_details', sa.JSON(), nullable=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.String(100), nullable=True),
        sa.Column('environment', sa.String(20), nullable=False, server_default='production'),
        sa.Column('service_version', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    """Drop purchase tables"""
    for table in (
        'audit_logs', 'failed_transactions', 'pending_pix_purchases', 'user_tokens',
        'user_products', 'purchases', 'activity_registrations', 'event_registrations',
        'access_targets', 'products', 'activities', 'events', 'users'
    ):
        op.drop_table(table)

    for enum_name in (
        'auditeventtype', 'auditlevel', 'failedtransactionstatus', 'purchasestatus',
        'settlementmethod', 'accessmethod'
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
