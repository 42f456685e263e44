"""Initial schema: catalog, instances, staging, documents and delivery queue

Revision ID: 3f9c2a7d1e4b
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1e4b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('clients',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('org_id', sa.UUID(), nullable=False),
        sa.Column('code', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('tax_id', sa.String(), nullable=True, comment='CPF, raw digits or punctuated'),
        sa.Column('social_insurance_id', sa.String(), nullable=True, comment='NIT/NIS'),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clients_org_id', 'clients', ['org_id'])
    op.create_index('ix_clients_tax_id', 'clients', ['tax_id'])
    op.create_index('ix_clients_social_insurance_id', 'clients', ['social_insurance_id'])

    op.create_table('obligations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('org_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('frequency', sa.String(), nullable=False, comment='weekly | monthly | annual'),
        sa.Column('internal_target_day', sa.Integer(), nullable=False),
        sa.Column('legal_due_rule', sa.Integer(), nullable=True, comment='Day of the due period; NULL = last day'),
        sa.Column('due_period_offset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fiscal_code', sa.String(), nullable=True),
        sa.Column('anchor_month', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_obligations_org_id', 'obligations', ['org_id'])
    op.create_index('ix_obligations_fiscal_code', 'obligations', ['fiscal_code'])

    op.create_table('client_obligations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('obligation_id', sa.UUID(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('internal_target_day_override', sa.Integer(), nullable=True),
        sa.Column('legal_due_rule_override', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['obligation_id'], ['obligations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'obligation_id', name='uq_client_obligation')
    )

    op.create_table('obligation_instances',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('obligation_id', sa.UUID(), nullable=False),
        sa.Column('competence', sa.String(length=8), nullable=False),
        sa.Column('due_at', sa.Date(), nullable=False),
        sa.Column('internal_target_at', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('completed_by', sa.UUID(), nullable=True),
        sa.Column('notified_due_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['obligation_id'], ['obligations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'obligation_id', 'competence', name='uq_obligation_instance_period')
    )
    op.create_index('ix_obligation_instances_status', 'obligation_instances', ['status'])

    op.create_table('staging_uploads',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('org_id', sa.UUID(), nullable=False),
        sa.Column('uploaded_by', sa.UUID(), nullable=True),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('mime_type', sa.String(), nullable=True),
        sa.Column('state', sa.String(), nullable=False, server_default='pending'),
        sa.Column('ocr_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('ocr_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ocr_error', sa.Text(), nullable=True),
        sa.Column('document_type', sa.String(), nullable=True),
        sa.Column('client_id', sa.UUID(), nullable=True),
        sa.Column('obligation_id', sa.UUID(), nullable=True),
        sa.Column('competence', sa.String(length=8), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('due_at', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['obligation_id'], ['obligations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_staging_uploads_org_id', 'staging_uploads', ['org_id'])

    op.create_table('documents',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('org_id', sa.UUID(), nullable=False),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('obligation_id', sa.UUID(), nullable=False),
        sa.Column('source_upload_id', sa.UUID(), nullable=True),
        sa.Column('competence', sa.String(length=8), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('due_at', sa.Date(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_by', sa.UUID(), nullable=True),
        sa.Column('delivery_state', sa.String(), nullable=False, server_default='sent'),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['obligation_id'], ['obligations.id']),
        sa.ForeignKeyConstraint(['source_upload_id'], ['staging_uploads.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_upload_id')
    )
    op.create_index('ix_documents_org_id', 'documents', ['org_id'])

    op.create_table('delivery_queue',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_id', sa.UUID(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('email_id', sa.String(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_queue_document_id', 'delivery_queue', ['document_id'])
    op.create_index('ix_delivery_queue_email_id', 'delivery_queue', ['email_id'])

    op.create_table('delivery_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email_id', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('recipient', sa.String(), nullable=True),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_events_email_id', 'delivery_events', ['email_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_delivery_events_email_id', table_name='delivery_events')
    op.drop_table('delivery_events')
    op.drop_index('ix_delivery_queue_email_id', table_name='delivery_queue')
    op.drop_index('ix_delivery_queue_document_id', table_name='delivery_queue')
    op.drop_table('delivery_queue')
    op.drop_index('ix_documents_org_id', table_name='documents')
    op.drop_table('documents')
    op.drop_index('ix_staging_uploads_org_id', table_name='staging_uploads')
    op.drop_table('staging_uploads')
    op.drop_index('ix_obligation_instances_status', table_name='obligation_instances')
    op.drop_table('obligation_instances')
    op.drop_table('client_obligations')
    op.drop_index('ix_obligations_fiscal_code', table_name='obligations')
    op.drop_index('ix_obligations_org_id', table_name='obligations')
    op.drop_table('obligations')
    op.drop_index('ix_clients_social_insurance_id', table_name='clients')
    op.drop_index('ix_clients_tax_id', table_name='clients')
    op.drop_index('ix_clients_org_id', table_name='clients')
    op.drop_table('clients')
