"""Initial schema: catalog, tenants, members, secondary accounts, invitations, customers

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-01

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_initial_schema'
down_revision = None


def _timestamps(updated=True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp())]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=True))
    return columns


def upgrade():
    # Catalog
    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('title', sa.String(100), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('user_limit', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_services_name', 'services', ['name'], unique=True)
    op.create_index('ix_services_is_active', 'services', ['is_active'])

    op.create_table(
        'modules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('url', sa.String(255), nullable=True),
        sa.Column('service_id', sa.Uuid(), sa.ForeignKey('services.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )
    op.create_index('ix_modules_name', 'modules', ['name'], unique=True)
    op.create_index('ix_modules_service_id', 'modules', ['service_id'])
    op.create_index('ix_modules_is_active', 'modules', ['is_active'])

    op.create_table(
        'roles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('portal_access', sa.Integer(), nullable=False),
        sa.Column('service_level', sa.Integer(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_roles_name', 'roles', ['name'], unique=True)

    op.create_table(
        'permissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'], unique=True)

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('role_id', sa.Uuid(), sa.ForeignKey('roles.id'), nullable=False),
        sa.Column('permission_id', sa.Uuid(), sa.ForeignKey('permissions.id'), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    # Tenants
    op.create_table(
        'addresses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('country_code', sa.String(2), nullable=False),
        sa.Column('state_code', sa.String(2), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('street', sa.String(200), nullable=True),
        sa.Column('line', sa.String(200), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'companies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('is_company', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('company_name', sa.String(200), nullable=True),
        sa.Column('brand', sa.String(200), nullable=True),
        sa.Column('domain', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('address_id', sa.Uuid(), sa.ForeignKey('addresses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_companies_domain', 'companies', ['domain'], unique=True)
    op.create_index('ix_companies_address_id', 'companies', ['address_id'])

    op.create_table(
        'custom_plans',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('user_limit', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_renewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('renew_date', sa.DateTime(), nullable=True),
        sa.Column('last_assigned_tier', sa.String(50), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('user_limit >= 1', name='ck_custom_plans_user_limit'),
        sa.CheckConstraint('price >= 0', name='ck_custom_plans_price'),
    )
    op.create_index('ix_custom_plans_company_id', 'custom_plans', ['company_id'], unique=True)
    op.create_index('ix_custom_plans_is_active', 'custom_plans', ['is_active'])

    op.create_table(
        'custom_modules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('custom_plan_id', sa.Uuid(), sa.ForeignKey('custom_plans.id'), nullable=False),
        sa.Column('module_id', sa.Uuid(), sa.ForeignKey('modules.id'), nullable=False),
        sa.Column('is_included', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('custom_plan_id', 'module_id', name='uq_custom_plan_module'),
    )
    op.create_index('ix_custom_modules_custom_plan_id', 'custom_modules', ['custom_plan_id'])
    op.create_index('ix_custom_modules_module_id', 'custom_modules', ['module_id'])
    op.create_index('ix_custom_modules_is_included', 'custom_modules', ['is_included'])

    # Members
    op.create_table(
        'tax_users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_owner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_tax_users_company_id', 'tax_users', ['company_id'])
    op.create_index('ix_tax_users_email', 'tax_users', ['email'], unique=True)
    op.create_index('ix_tax_users_is_owner', 'tax_users', ['is_owner'])
    op.create_index('ix_tax_users_is_active', 'tax_users', ['is_active'])
    op.create_index('ix_tax_users_created_at', 'tax_users', ['created_at'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tax_user_id', sa.Uuid(), sa.ForeignKey('tax_users.id'), nullable=False),
        sa.Column('role_id', sa.Uuid(), sa.ForeignKey('roles.id'), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('tax_user_id', 'role_id', name='uq_user_role'),
    )
    op.create_index('ix_user_roles_tax_user_id', 'user_roles', ['tax_user_id'])
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'])

    op.create_table(
        'company_permissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tax_user_id', sa.Uuid(), sa.ForeignKey('tax_users.id'), nullable=False),
        sa.Column('permission_id', sa.Uuid(), sa.ForeignKey('permissions.id'), nullable=False),
        sa.Column('is_granted', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('description', sa.String(500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tax_user_id', 'permission_id', name='uq_member_permission'),
    )
    op.create_index('ix_company_permissions_tax_user_id', 'company_permissions', ['tax_user_id'])
    op.create_index('ix_company_permissions_permission_id', 'company_permissions', ['permission_id'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tax_user_id', sa.Uuid(), sa.ForeignKey('tax_users.id'), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('device', sa.String(255), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_sessions_tax_user_id', 'sessions', ['tax_user_id'])
    op.create_index('ix_sessions_is_revoked', 'sessions', ['is_revoked'])

    # Secondary accounts
    op.create_table(
        'company_users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_company_users_company_id', 'company_users', ['company_id'])
    op.create_index('ix_company_users_email', 'company_users', ['email'], unique=True)
    op.create_index('ix_company_users_is_active', 'company_users', ['is_active'])
    op.create_index('ix_company_users_created_at', 'company_users', ['created_at'])

    op.create_table(
        'company_user_roles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_user_id', sa.Uuid(), sa.ForeignKey('company_users.id'), nullable=False),
        sa.Column('role_id', sa.Uuid(), sa.ForeignKey('roles.id'), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('company_user_id', 'role_id', name='uq_company_user_role'),
    )
    op.create_index('ix_company_user_roles_company_user_id', 'company_user_roles', ['company_user_id'])
    op.create_index('ix_company_user_roles_role_id', 'company_user_roles', ['role_id'])

    op.create_table(
        'company_user_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_user_id', sa.Uuid(), sa.ForeignKey('company_users.id'), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('device', sa.String(255), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_company_user_sessions_company_user_id', 'company_user_sessions', ['company_user_id'])
    op.create_index('ix_company_user_sessions_is_revoked', 'company_user_sessions', ['is_revoked'])

    # Invitations
    op.create_table(
        'invitations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('invited_by_user_id', sa.Uuid(), sa.ForeignKey('tax_users.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('token', sa.String(1024), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'ACCEPTED', 'CANCELLED', 'EXPIRED', name='invitationstatus'),
            nullable=False,
            server_default='PENDING',
        ),
        sa.Column('personal_message', sa.String(1000), nullable=True),
        sa.Column('role_ids', sa.JSON(), nullable=False),
        sa.Column('invitation_link', sa.String(2048), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('registered_user_id', sa.Uuid(), sa.ForeignKey('company_users.id'), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Uuid(), sa.ForeignKey('tax_users.id'), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
    )
    op.create_index('ix_invitations_company_id', 'invitations', ['company_id'])
    op.create_index('ix_invitations_invited_by_user_id', 'invitations', ['invited_by_user_id'])
    op.create_index('ix_invitations_email', 'invitations', ['email'])
    op.create_index('ix_invitations_token', 'invitations', ['token'], unique=True)
    op.create_index('ix_invitations_expires_at', 'invitations', ['expires_at'])
    op.create_index('ix_invitations_status', 'invitations', ['status'])

    # Customer registry
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_customers_company_id', 'customers', ['company_id'])
    op.create_index('ix_customers_email', 'customers', ['email'])
    op.create_index('ix_customers_is_active', 'customers', ['is_active'])


def downgrade():
    for table in (
        'customers',
        'invitations',
        'company_user_sessions',
        'company_user_roles',
        'company_users',
        'sessions',
        'company_permissions',
        'user_roles',
        'tax_users',
        'custom_modules',
        'custom_plans',
        'companies',
        'addresses',
        'role_permissions',
        'permissions',
        'roles',
        'modules',
        'services',
    ):
        op.drop_table(table)
    sa.Enum(name='invitationstatus').drop(op.get_bind(), checkfirst=True)
