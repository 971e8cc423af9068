"""Kernel schema - identities, tenant resources, review links, audit log, impersonation

Revision ID: 0001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('institution_id', sa.String(64), nullable=True),
        sa.Column('qcto_id', sa.String(64), nullable=True),
        sa.Column('assigned_provinces', sa.JSON(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_institution_id', 'users', ['institution_id'])

    # Tenant resources
    op.create_table(
        'institutions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('legal_name', sa.String(255), nullable=False),
        sa.Column('trading_name', sa.String(255), nullable=True),
        sa.Column('province', sa.String(100), nullable=False),
        sa.Column('registration_number', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_institutions_province', 'institutions', ['province'])

    op.create_table(
        'readiness',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('institution_id', sa.String(64), sa.ForeignKey('institutions.id'), nullable=False),
        sa.Column('qualification_title', sa.String(255), nullable=False),
        sa.Column('readiness_status', sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_readiness_institution_id', 'readiness', ['institution_id'])

    op.create_table(
        'facilitators',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('readiness_id', sa.String(64), sa.ForeignKey('readiness.id'), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('id_number', sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_facilitators_readiness_id', 'facilitators', ['readiness_id'])

    op.create_table(
        'learners',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('institution_id', sa.String(64), sa.ForeignKey('institutions.id'), nullable=False),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('national_id', sa.String(50), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_learners_institution_id', 'learners', ['institution_id'])
    op.create_index('ix_learners_user_id', 'learners', ['user_id'])
    op.create_index(
        'ix_learners_institution_national_id', 'learners', ['institution_id', 'national_id'], unique=True
    )

    op.create_table(
        'enrolments',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('institution_id', sa.String(64), sa.ForeignKey('institutions.id'), nullable=False),
        sa.Column('learner_id', sa.String(64), sa.ForeignKey('learners.id'), nullable=False),
        sa.Column('qualification_title', sa.String(255), nullable=False),
        sa.Column('enrolment_status', sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_enrolments_institution_id', 'enrolments', ['institution_id'])
    op.create_index('ix_enrolments_learner_id', 'enrolments', ['learner_id'])

    op.create_table(
        'documents',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('related_entity', sa.String(50), nullable=False),
        sa.Column('related_entity_id', sa.String(64), nullable=False),
        sa.Column('document_type', sa.String(100), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_documents_related', 'documents', ['related_entity', 'related_entity_id'])

    # Regulator review links
    op.create_table(
        'submissions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('institution_id', sa.String(64), sa.ForeignKey('institutions.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.String(64), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_submissions_institution_id', 'submissions', ['institution_id'])

    op.create_table(
        'submission_resources',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('submission_id', sa.String(64), sa.ForeignKey('submissions.id'), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id_value', sa.String(64), nullable=False),
    )
    op.create_index('ix_submission_resources_submission_id', 'submission_resources', ['submission_id'])
    op.create_index(
        'ix_submission_resources_target', 'submission_resources', ['resource_type', 'resource_id_value']
    )

    op.create_table(
        'regulator_requests',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('institution_id', sa.String(64), sa.ForeignKey('institutions.id'), nullable=False),
        sa.Column('requested_by', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_regulator_requests_institution_id', 'regulator_requests', ['institution_id'])

    op.create_table(
        'request_resources',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('request_id', sa.String(64), sa.ForeignKey('regulator_requests.id'), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id_value', sa.String(64), nullable=False),
    )
    op.create_index('ix_request_resources_request_id', 'request_resources', ['request_id'])
    op.create_index('ix_request_resources_target', 'request_resources', ['resource_type', 'resource_id_value'])

    # Audit log (append-only)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('field_name', sa.String(100), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('changed_by', sa.String(64), nullable=False),
        sa.Column('role_at_time', sa.String(50), nullable=False),
        sa.Column('impersonated_by', sa.String(64), nullable=True),
        sa.Column('change_type', sa.String(50), nullable=False),
        sa.Column('institution_id', sa.String(64), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('related_submission_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_logs_changed_by', 'audit_logs', ['changed_by'])
    op.create_index('ix_audit_logs_institution_id', 'audit_logs', ['institution_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_logs_actor_time', 'audit_logs', ['changed_by', 'created_at'])
    op.create_index('ix_audit_logs_institution_time', 'audit_logs', ['institution_id', 'created_at'])

    # Impersonation sessions
    op.create_table(
        'impersonation_sessions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('token', sa.String(128), nullable=False, unique=True),
        sa.Column('impersonator_id', sa.String(64), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('target_user_id', sa.String(64), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_by', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
    )
    op.create_index('ix_impersonation_sessions_impersonator_id', 'impersonation_sessions', ['impersonator_id'])
    op.create_index('ix_impersonation_sessions_target_user_id', 'impersonation_sessions', ['target_user_id'])
    op.create_index(
        'ix_impersonation_sessions_actor_status', 'impersonation_sessions', ['impersonator_id', 'status']
    )


def downgrade() -> None:
    op.drop_table('impersonation_sessions')
    op.drop_table('audit_logs')
    op.drop_table('request_resources')
    op.drop_table('regulator_requests')
    op.drop_table('submission_resources')
    op.drop_table('submissions')
    op.drop_table('documents')
    op.drop_table('enrolments')
    op.drop_table('learners')
    op.drop_table('facilitators')
    op.drop_table('readiness')
    op.drop_table('institutions')
    op.drop_table('users')
