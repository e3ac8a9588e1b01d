"""Initial referral marketplace schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

ID = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')
MONEY = sa.Numeric(precision=19, scale=4)


def _id_column() -> sa.Column:
    return sa.Column('id', ID, nullable=False, autoincrement=True)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    """Create users, sessions, jobs, referrals, ledger, disputes and audit tables."""
    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending_verification'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'user_sessions',
        _id_column(),
        sa.Column('user_id', ID, nullable=False),
        sa.Column('refresh_token_hash', sa.String(length=255), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('refresh_token_hash', name='uq_user_sessions_refresh_token_hash'),
    )
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'])
    op.create_index('ix_user_sessions_refresh_token_hash', 'user_sessions', ['refresh_token_hash'])
    op.create_index('idx_user_sessions_expires_at', 'user_sessions', ['expires_at'])

    op.create_table(
        'auth_logs',
        _id_column(),
        sa.Column('user_id', ID, nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_auth_logs_user_id', 'auth_logs', ['user_id'])
    op.create_index('ix_auth_logs_action', 'auth_logs', ['action'])

    for table in ('email_verifications', 'password_resets'):
        op.create_table(
            table,
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('token_hash', sa.String(length=255), nullable=False),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint('email'),
        )
        op.create_index(f'ix_{table}_token_hash', table, ['token_hash'])

    op.create_table(
        'organizations',
        _id_column(),
        sa.Column('owner_id', ID, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('website_url', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_organizations_owner_id', 'organizations', ['owner_id'])

    op.create_table(
        'job_postings',
        _id_column(),
        sa.Column('posted_by_user_id', ID, nullable=False),
        sa.Column('organization_id', ID, nullable=True),
        sa.Column('job_title', sa.String(length=255), nullable=False),
        sa.Column('job_description', sa.Text(), nullable=False),
        sa.Column('job_url', sa.String(length=2048), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('referral_fee', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['posted_by_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.CheckConstraint('referral_fee >= 0', name='ck_job_postings_fee_non_negative'),
    )
    op.create_index('ix_job_postings_posted_by_user_id', 'job_postings', ['posted_by_user_id'])
    op.create_index('ix_job_postings_organization_id', 'job_postings', ['organization_id'])
    op.create_index('idx_job_postings_title', 'job_postings', ['job_title'])
    op.create_index('idx_job_postings_is_active', 'job_postings', ['is_active'])

    op.create_table(
        'referral_requests',
        _id_column(),
        sa.Column('job_posting_id', ID, nullable=False),
        sa.Column('job_seeker_id', ID, nullable=False),
        sa.Column('employee_id', ID, nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending_acceptance'),
        sa.Column('payment_status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['job_posting_id'], ['job_postings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_seeker_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_referral_requests_job_posting_id', 'referral_requests', ['job_posting_id'])
    op.create_index('ix_referral_requests_job_seeker_id', 'referral_requests', ['job_seeker_id'])
    op.create_index('ix_referral_requests_employee_id', 'referral_requests', ['employee_id'])
    op.create_index('idx_referral_requests_status', 'referral_requests', ['status'])
    op.create_index('idx_referral_requests_payment_status', 'referral_requests', ['payment_status'])

    op.create_table(
        'referral_status_history',
        _id_column(),
        sa.Column('referral_request_id', ID, nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('changed_by_user_id', ID, nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['referral_request_id'], ['referral_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by_user_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index(
        'ix_referral_status_history_referral_request_id',
        'referral_status_history',
        ['referral_request_id'],
    )

    op.create_table(
        'wallets',
        _id_column(),
        sa.Column('owner_id', ID, nullable=False),
        sa.Column('owner_type', sa.String(length=50), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'owner_type', name='uq_wallets_owner'),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
    )

    op.create_table(
        'transactions',
        _id_column(),
        sa.Column('wallet_id', ID, nullable=False),
        sa.Column('referral_request_id', ID, nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('gateway_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['referral_request_id'], ['referral_requests.id'], ondelete='SET NULL'),
        sa.CheckConstraint('amount <> 0', name='ck_transactions_amount_non_zero'),
    )
    op.create_index('ix_transactions_wallet_id', 'transactions', ['wallet_id'])
    op.create_index('ix_transactions_referral_request_id', 'transactions', ['referral_request_id'])
    op.create_index('idx_transactions_status', 'transactions', ['status'])

    op.create_table(
        'disputes',
        _id_column(),
        sa.Column('referral_request_id', ID, nullable=False),
        sa.Column('claimant_id', ID, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='open'),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('resolved_by_admin_id', ID, nullable=True),
        _created_at(),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['referral_request_id'], ['referral_requests.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['claimant_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['resolved_by_admin_id'], ['users.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('referral_request_id', name='uq_disputes_referral_request_id'),
    )

    op.create_table(
        'audit_logs',
        _id_column(),
        sa.Column('actor_user_id', ID, nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('target_type', sa.String(length=50), nullable=False),
        sa.Column('target_id', ID, nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('idx_audit_logs_target', 'audit_logs', ['target_type', 'target_id'])


def downgrade() -> None:
    """Drop every table, dependents first."""
    for table in (
        'audit_logs',
        'disputes',
        'transactions',
        'wallets',
        'referral_status_history',
        'referral_requests',
        'job_postings',
        'organizations',
        'password_resets',
        'email_verifications',
        'auth_logs',
        'user_sessions',
        'users',
    ):
        op.drop_table(table)
