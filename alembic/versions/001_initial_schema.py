"""Initial schema: users, documents, shares, OTP challenges, access logs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

share_access = sa.Enum('public', 'private', name='shareaccess')
access_action = sa.Enum(
    'view', 'download', 'otp_request', 'otp_verify', 'share_create', 'share_revoke',
    'share_expiry_update', 'share_delete', 'document_delete',
    name='accessaction',
)


def upgrade():
    op.create_table(
        'users',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'documents',
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_path', sa.String(length=512), nullable=False),
        sa.Column('mime_type', sa.String(length=255), nullable=True),
        sa.Column('file_size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('document_id')
    )
    op.create_index('ix_documents_owner_user_id', 'documents', ['owner_user_id'])

    op.create_table(
        'shares',
        sa.Column('share_id', sa.String(length=36), nullable=False),
        sa.Column('share_token', sa.String(length=128), nullable=False),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('from_user_id', sa.String(length=36), nullable=False),
        sa.Column('to_user_id', sa.String(length=36), nullable=True),
        sa.Column('to_user_email', sa.String(length=255), nullable=True),
        sa.Column('access', share_access, nullable=False),
        sa.Column('expiry_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),

        # Live-row slot; NULL once revoked or retired
        sa.Column('dedupe_key', sa.String(length=512), nullable=True),

        sa.ForeignKeyConstraint(['document_id'], ['documents.document_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['to_user_id'], ['users.user_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('share_id'),
        sa.UniqueConstraint('dedupe_key')
    )
    op.create_index('ix_shares_share_token', 'shares', ['share_token'], unique=True)
    op.create_index('ix_shares_document_id', 'shares', ['document_id'])
    op.create_index('ix_shares_from_user_id', 'shares', ['from_user_id'])
    op.create_index('ix_shares_to_user_id', 'shares', ['to_user_id'])

    op.create_table(
        'otp_verifications',
        sa.Column('otp_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('share_id', sa.String(length=36), nullable=False),
        sa.Column('otp_code', sa.String(length=10), nullable=False),
        sa.Column('expiry_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('pending_key', sa.String(length=80), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['share_id'], ['shares.share_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('otp_id'),
        sa.UniqueConstraint('pending_key')
    )
    op.create_index('ix_otp_verifications_user_id', 'otp_verifications', ['user_id'])
    op.create_index('ix_otp_verifications_share_id', 'otp_verifications', ['share_id'])

    # No foreign keys: audit rows outlive shares and documents
    op.create_table(
        'access_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('share_id', sa.String(length=36), nullable=True),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('viewer_user_id', sa.String(length=36), nullable=True),
        sa.Column('action', access_action, nullable=False),
        sa.Column('meta', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_access_logs_share_id', 'access_logs', ['share_id'])
    op.create_index('ix_access_logs_document_id', 'access_logs', ['document_id'])
    op.create_index('ix_access_logs_created_at', 'access_logs', ['created_at'])


def downgrade():
    op.drop_index('ix_access_logs_created_at', 'access_logs')
    op.drop_index('ix_access_logs_document_id', 'access_logs')
    op.drop_index('ix_access_logs_share_id', 'access_logs')
    op.drop_table('access_logs')

    op.drop_index('ix_otp_verifications_share_id', 'otp_verifications')
    op.drop_index('ix_otp_verifications_user_id', 'otp_verifications')
    op.drop_table('otp_verifications')

    op.drop_index('ix_shares_to_user_id', 'shares')
    op.drop_index('ix_shares_from_user_id', 'shares')
    op.drop_index('ix_shares_document_id', 'shares')
    op.drop_index('ix_shares_share_token', 'shares')
    op.drop_table('shares')

    op.drop_index('ix_documents_owner_user_id', 'documents')
    op.drop_table('documents')

    op.drop_index('ix_users_email', 'users')
    op.drop_table('users')

    access_action.drop(op.get_bind(), checkfirst=True)
    share_access.drop(op.get_bind(), checkfirst=True)
