"""Initial schema - batches, documents, recipients, acknowledgements, milestones

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates the portal tables and the notification milestone ledger.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create portal tables."""

    # ==========================================================================
    # Businesses
    # ==========================================================================
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_businesses'),
    )

    # ==========================================================================
    # Batches
    # ==========================================================================
    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_batches'),
    )

    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('drive_id', sa.String(length=255), nullable=True),
        sa.Column('item_id', sa.String(length=255), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('requires_signature', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ['batch_id'], ['batches.id'],
            name='fk_documents_batch_id_batches', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_documents'),
    )
    op.create_index('idx_documents_batch', 'documents', ['batch_id'])

    op.create_table(
        'recipients',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=True),
        sa.Column('user_principal', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('job_title', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('primary_group', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(
            ['batch_id'], ['batches.id'],
            name='fk_recipients_batch_id_batches', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['business_id'], ['businesses.id'],
            name='fk_recipients_business_id_businesses', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_recipients'),
        sa.UniqueConstraint('batch_id', 'email', name='uq_recipients_batch_email'),
    )
    op.create_index('idx_recipients_batch', 'recipients', ['batch_id'])

    # ==========================================================================
    # Acknowledgements
    # ==========================================================================
    op.create_table(
        'acknowledgements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('acknowledged', sa.Boolean(), nullable=False),
        sa.Column('ack_date', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['batch_id'], ['batches.id'],
            name='fk_acknowledgements_batch_id_batches', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['document_id'], ['documents.id'],
            name='fk_acknowledgements_document_id_documents', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_acknowledgements'),
        sa.UniqueConstraint(
            'batch_id', 'document_id', 'email',
            name='uq_acknowledgements_batch_document_email',
        ),
    )
    op.create_index('idx_acks_batch_email', 'acknowledgements', ['batch_id', 'email'])

    # ==========================================================================
    # Notifications
    # ==========================================================================
    op.create_table(
        'notification_milestones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('subject_email', sa.String(length=255), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dispatch_status', sa.String(length=20), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['batch_id'], ['batches.id'],
            name='fk_notification_milestones_batch_id_batches', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_notification_milestones'),
        sa.UniqueConstraint(
            'batch_id', 'kind', 'subject_email',
            name='uq_notification_milestones_subject',
        ),
    )
    op.create_index(
        'idx_milestones_batch_state', 'notification_milestones', ['batch_id', 'state']
    )

    op.create_table(
        'notification_emails',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_notification_emails'),
        sa.UniqueConstraint('email', name='uq_notification_emails_email'),
    )


def downgrade() -> None:
    op.drop_table('notification_emails')
    op.drop_index('idx_milestones_batch_state', table_name='notification_milestones')
    op.drop_table('notification_milestones')
    op.drop_index('idx_acks_batch_email', table_name='acknowledgements')
    op.drop_table('acknowledgements')
    op.drop_index('idx_recipients_batch', table_name='recipients')
    op.drop_table('recipients')
    op.drop_index('idx_documents_batch', table_name='documents')
    op.drop_table('documents')
    op.drop_table('batches')
    op.drop_table('businesses')
