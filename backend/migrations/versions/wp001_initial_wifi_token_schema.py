"""Initial schema: businesses, devices, WiFi tokens, sales, expense ledger, connected clients

Revision ID: wp001
Revises:
Create Date: 2026-10-18 09:12:41.208113

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'wp001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('businesses',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('code', sa.String(length=32), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('businesses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_businesses_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_businesses_is_active'), ['is_active'], unique=False)

    op.create_table('device_registry',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('device_family', sa.String(length=16), nullable=False),
    sa.Column('address', sa.String(length=255), nullable=False),
    sa.Column('admin_username', sa.String(length=255), nullable=True),
    sa.Column('encrypted_secret', sa.Text(), nullable=False),
    sa.Column('model', sa.String(length=50), nullable=True),
    sa.Column('firmware_version', sa.String(length=50), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('connection_status', sa.String(length=16), nullable=False),
    sa.Column('last_health_check', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_connected_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('device_family', 'address', name='uq_device_registry_family_address'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('device_registry', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_device_registry_device_family'), ['device_family'], unique=False)
        batch_op.create_index(batch_op.f('ix_device_registry_is_active'), ['is_active'], unique=False)

    op.create_table('business_integrations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('device_registry_id', sa.Integer(), nullable=False),
    sa.Column('device_family', sa.String(length=16), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['device_registry_id'], ['device_registry.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('business_integrations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_business_integrations_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_business_integrations_device_registry_id'), ['device_registry_id'], unique=False)
        batch_op.create_index('ix_business_integrations_lookup', ['business_id', 'device_family', 'is_active'], unique=False)

    op.create_table('wlans',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('device_registry_id', sa.Integer(), nullable=False),
    sa.Column('device_wlan_name', sa.String(length=255), nullable=False),
    sa.Column('ssid', sa.String(length=255), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['device_registry_id'], ['device_registry.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('wlans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wlans_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wlans_device_registry_id'), ['device_registry_id'], unique=False)

    op.create_table('mac_acl_entries',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('device_registry_id', sa.Integer(), nullable=False),
    sa.Column('mac_address', sa.String(length=17), nullable=False),
    sa.Column('reason', sa.String(length=255), nullable=True),
    sa.Column('created_by', sa.String(length=64), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['device_registry_id'], ['device_registry.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('business_id', 'device_registry_id', 'mac_address', name='uq_mac_acl_business_device_mac'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('mac_acl_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_mac_acl_entries_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_mac_acl_entries_device_registry_id'), ['device_registry_id'], unique=False)

    op.create_table('token_package_configs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('wlan_id', sa.Integer(), nullable=True),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('duration_value', sa.Integer(), nullable=False),
    sa.Column('duration_unit', sa.String(length=20), nullable=False),
    sa.Column('device_limit', sa.Integer(), nullable=False),
    sa.Column('bandwidth_down_mb', sa.Integer(), nullable=True),
    sa.Column('bandwidth_up_mb', sa.Integer(), nullable=True),
    sa.Column('base_price_cents', sa.Integer(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('display_order', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['wlan_id'], ['wlans.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('token_package_configs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_token_package_configs_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_token_package_configs_wlan_id'), ['wlan_id'], unique=False)

    op.create_table('wifi_tokens',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('token_package_id', sa.Integer(), nullable=False),
    sa.Column('device_registry_id', sa.Integer(), nullable=True),
    sa.Column('device_family', sa.String(length=16), nullable=False),
    sa.Column('username', sa.String(length=64), nullable=False),
    sa.Column('password', sa.String(length=64), nullable=True),
    sa.Column('device_object_id', sa.String(length=64), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('first_used_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['device_registry_id'], ['device_registry.id'], ),
    sa.ForeignKeyConstraint(['token_package_id'], ['token_package_configs.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('business_id', 'device_family', 'username', name='uq_wifi_tokens_business_family_username'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('wifi_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wifi_tokens_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wifi_tokens_device_registry_id'), ['device_registry_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wifi_tokens_token_package_id'), ['token_package_id'], unique=False)
        batch_op.create_index('ix_wifi_tokens_business_status', ['business_id', 'status'], unique=False)

    op.create_table('expense_accounts',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('account_number', sa.String(length=64), nullable=False),
    sa.Column('account_name', sa.String(length=255), nullable=False),
    sa.Column('balance_cents', sa.Integer(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('business_id', 'account_number', name='uq_expense_accounts_business_number'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('expense_accounts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_expense_accounts_business_id'), ['business_id'], unique=False)

    op.create_table('token_sales',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('token_id', sa.Integer(), nullable=False),
    sa.Column('expense_account_id', sa.Integer(), nullable=False),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('payment_method', sa.String(length=32), nullable=False),
    sa.Column('sale_channel', sa.String(length=16), nullable=False),
    sa.Column('sold_by', sa.String(length=64), nullable=False),
    sa.Column('sold_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['expense_account_id'], ['expense_accounts.id'], ),
    sa.ForeignKeyConstraint(['token_id'], ['wifi_tokens.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('token_id', name='uq_token_sales_token'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('token_sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_token_sales_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_token_sales_expense_account_id'), ['expense_account_id'], unique=False)
        batch_op.create_index('ix_token_sales_business_sold_at', ['business_id', 'sold_at'], unique=False)

    op.create_table('expense_account_deposits',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('expense_account_id', sa.Integer(), nullable=False),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('source_type', sa.String(length=32), nullable=False),
    sa.Column('token_sale_id', sa.Integer(), nullable=True),
    sa.Column('description', sa.String(length=255), nullable=True),
    sa.Column('created_by', sa.String(length=64), nullable=False),
    sa.Column('deposited_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['expense_account_id'], ['expense_accounts.id'], ),
    sa.ForeignKeyConstraint(['token_sale_id'], ['token_sales.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('expense_account_deposits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_expense_account_deposits_expense_account_id'), ['expense_account_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_expense_account_deposits_source_type'), ['source_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_expense_account_deposits_token_sale_id'), ['token_sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_expense_account_deposits_deposited_at'), ['deposited_at'], unique=False)

    op.create_table('expense_account_payments',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('expense_account_id', sa.Integer(), nullable=False),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('payee', sa.String(length=255), nullable=True),
    sa.Column('category', sa.String(length=64), nullable=True),
    sa.Column('description', sa.String(length=255), nullable=True),
    sa.Column('created_by', sa.String(length=64), nullable=False),
    sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['expense_account_id'], ['expense_accounts.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('expense_account_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_expense_account_payments_expense_account_id'), ['expense_account_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_expense_account_payments_paid_at'), ['paid_at'], unique=False)

    op.create_table('connected_clients',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('business_id', sa.Integer(), nullable=False),
    sa.Column('token_id', sa.Integer(), nullable=False),
    sa.Column('mac_address', sa.String(length=17), nullable=False),
    sa.Column('ip_address', sa.String(length=45), nullable=True),
    sa.Column('hostname', sa.String(length=255), nullable=True),
    sa.Column('device_type', sa.String(length=100), nullable=True),
    sa.Column('is_online', sa.Boolean(), nullable=False),
    sa.Column('bandwidth_used_down_mb', sa.Float(), nullable=False),
    sa.Column('bandwidth_used_up_mb', sa.Float(), nullable=False),
    sa.Column('usage_count', sa.Integer(), nullable=False),
    sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=False),
    sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
    sa.ForeignKeyConstraint(['token_id'], ['wifi_tokens.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('token_id', 'mac_address', name='uq_connected_clients_token_mac'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('connected_clients', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_connected_clients_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_connected_clients_token_id'), ['token_id'], unique=False)
        batch_op.create_index('ix_connected_clients_business_online', ['business_id', 'is_online'], unique=False)


def downgrade():
    # Reverse dependency order
    op.drop_table('connected_clients')
    op.drop_table('expense_account_payments')
    op.drop_table('expense_account_deposits')
    op.drop_table('token_sales')
    op.drop_table('expense_accounts')
    op.drop_table('wifi_tokens')
    op.drop_table('token_package_configs')
    op.drop_table('mac_acl_entries')
    op.drop_table('wlans')
    op.drop_table('business_integrations')
    op.drop_table('device_registry')
    op.drop_table('businesses')
