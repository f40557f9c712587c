"""initial toolbox talks schema

Revision ID: a1c0de7b5e01
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


revision = 'a1c0de7b5e01'
down_revision = None
branch_labels = None
depends_on = None


FREQUENCY_ENUM = sa.Enum('ONCE', 'WEEKLY', 'MONTHLY', 'ANNUALLY', name='training_frequency_enum')
TALK_STATUS_ENUM = sa.Enum('PENDING', 'OVERDUE', 'COMPLETED', 'CANCELLED', name='scheduled_talk_status_enum')
ROLE_ENUM = sa.Enum('ADMIN', 'SUPERVISOR', 'OPERATOR', name='employee_role_enum')


def upgrade() -> None:
    # --- accounts -----------------------------------------------------------
    op.create_table('tenants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table('employees',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_code', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=64), nullable=True),
        sa.Column('job_title', sa.String(length=64), nullable=True),
        sa.Column('role', ROLE_ENUM, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'employee_code', name='uq_employees_tenant_code'),
    )
    op.create_index('ix_employees_tenant_id', 'employees', ['tenant_id'])
    op.create_index('ix_employees_email', 'employees', ['email'])
    op.create_index('ix_employees_role', 'employees', ['role'])
    op.create_index('ix_employees_is_active', 'employees', ['is_active'])
    op.create_index('idx_employees_tenant_active', 'employees', ['tenant_id', 'is_active'])
    op.create_index('idx_employees_tenant_department', 'employees', ['tenant_id', 'department'])

    op.create_table('tenant_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('module', sa.String(length=64), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'key', name='uq_tenant_settings_tenant_key'),
    )
    op.create_index('ix_tenant_settings_tenant_id', 'tenant_settings', ['tenant_id'])

    # --- audit --------------------------------------------------------------
    op.create_table('audit_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('actor_employee_id', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_events_tenant_entity', 'audit_events', ['tenant_id', 'entity_type', 'entity_id'])
    op.create_index('ix_audit_events_tenant_action', 'audit_events', ['tenant_id', 'action'])
    op.create_index('ix_audit_events_tenant_time_desc', 'audit_events', ['tenant_id', sa.text('occurred_at DESC')])
    op.create_index('ix_audit_events_actor_employee_id', 'audit_events', ['actor_employee_id'])

    # --- lookups ------------------------------------------------------------
    op.create_table('lookup_categories',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('module', sa.String(length=64), nullable=False),
        sa.Column('allow_custom', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_lookup_categories_name', 'lookup_categories', ['name'], unique=True)

    op.create_table('lookup_values',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('category_id', sa.String(length=36), sa.ForeignKey('lookup_categories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('category_id', 'code', name='uq_lookup_values_category_code'),
    )
    op.create_index('ix_lookup_values_category_id', 'lookup_values', ['category_id'])

    op.create_table('tenant_lookup_values',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', sa.String(length=36), sa.ForeignKey('lookup_categories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lookup_value_id', sa.String(length=36), sa.ForeignKey('lookup_values.id', ondelete='CASCADE'), nullable=True),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'category_id', 'code', name='uq_tenant_lookup_values_tenant_category_code'),
        sa.UniqueConstraint('tenant_id', 'lookup_value_id', name='uq_tenant_lookup_values_tenant_global'),
    )
    op.create_index('ix_tenant_lookup_values_tenant_id', 'tenant_lookup_values', ['tenant_id'])
    op.create_index('idx_tenant_lookup_values_tenant_category', 'tenant_lookup_values', ['tenant_id', 'category_id'])

    categories = sa.table('lookup_categories',
        sa.column('id', sa.String),
        sa.column('name', sa.String),
        sa.column('module', sa.String),
        sa.column('allow_custom', sa.Boolean),
        sa.column('is_active', sa.Boolean),
    )
    op.bulk_insert(categories, [
        {'id': '0190f000-0000-7000-8000-000000000001', 'name': 'Department', 'module': 'Core', 'allow_custom': True, 'is_active': True},
        {'id': '0190f000-0000-7000-8000-000000000002', 'name': 'JobTitle', 'module': 'Core', 'allow_custom': True, 'is_active': True},
    ])

    # --- supervision --------------------------------------------------------
    op.create_table('supervisor_assignments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('supervisor_id', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('operator_id', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('assigned_by', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('unassigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('unassigned_by', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_supervisor_assignments_tenant_id', 'supervisor_assignments', ['tenant_id'])
    op.create_index('ix_supervisor_assignments_is_active', 'supervisor_assignments', ['is_active'])
    op.create_index('idx_supervisor_assignments_tenant_supervisor', 'supervisor_assignments', ['tenant_id', 'supervisor_id'])
    op.create_index('idx_supervisor_assignments_tenant_operator', 'supervisor_assignments', ['tenant_id', 'operator_id'])
    op.create_index(
        'uq_supervisor_assignments_active_pair',
        'supervisor_assignments',
        ['tenant_id', 'supervisor_id', 'operator_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    # --- training -----------------------------------------------------------
    op.create_table('courses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('default_frequency', FREQUENCY_ENUM, nullable=True),
        sa.Column('auto_assign_new_employees', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_courses_tenant_code'),
    )
    op.create_index('ix_courses_tenant_id', 'courses', ['tenant_id'])
    op.create_index('ix_courses_category', 'courses', ['category'])
    op.create_index('ix_courses_is_active', 'courses', ['is_active'])
    op.create_index('idx_courses_tenant_active', 'courses', ['tenant_id', 'is_active'])

    op.create_table('course_assignments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.String(length=36), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('frequency', FREQUENCY_ENUM, nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('assigned_by', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_course_assignments_tenant_id', 'course_assignments', ['tenant_id'])
    op.create_index('ix_course_assignments_active', 'course_assignments', ['active'])
    op.create_index('idx_course_assignments_tenant_employee', 'course_assignments', ['tenant_id', 'employee_id'])
    op.create_index('idx_course_assignments_tenant_course', 'course_assignments', ['tenant_id', 'course_id'])
    op.create_index(
        'uq_course_assignments_active_pair',
        'course_assignments',
        ['tenant_id', 'course_id', 'employee_id'],
        unique=True,
        postgresql_where=sa.text('active'),
        sqlite_where=sa.text('active = 1'),
    )

    op.create_table('scheduled_talks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assignment_id', sa.String(length=36), sa.ForeignKey('course_assignments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', TALK_STATUS_ENUM, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reminders_sent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reminder_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scheduled_talks_tenant_id', 'scheduled_talks', ['tenant_id'])
    op.create_index('ix_scheduled_talks_assignment_id', 'scheduled_talks', ['assignment_id'])
    op.create_index('idx_scheduled_talks_tenant_status_due', 'scheduled_talks', ['tenant_id', 'status', 'due_at'])
    op.create_index(
        'uq_scheduled_talks_open_per_assignment',
        'scheduled_talks',
        ['assignment_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'OVERDUE')"),
        sqlite_where=sa.text("status IN ('PENDING', 'OVERDUE')"),
    )

    op.create_table('scheduled_talk_completions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('scheduled_talk_id', sa.String(length=36), sa.ForeignKey('scheduled_talks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('signed_by_name', sa.String(length=200), nullable=False),
        sa.Column('signature_data', sa.Text(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('signed_by_employee_id', sa.String(length=36), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('certificate_number', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scheduled_talk_id', name='uq_scheduled_talk_completions_talk'),
    )
    op.create_index('ix_scheduled_talk_completions_tenant_id', 'scheduled_talk_completions', ['tenant_id'])
    op.create_index('ix_scheduled_talk_completions_certificate_number', 'scheduled_talk_completions', ['certificate_number'])
    op.create_index(
        'idx_scheduled_talk_completions_tenant_completed',
        'scheduled_talk_completions',
        ['tenant_id', 'completed_at'],
    )


def downgrade() -> None:
    for table in [
        'scheduled_talk_completions',
        'scheduled_talks',
        'course_assignments',
        'courses',
        'supervisor_assignments',
        'tenant_lookup_values',
        'lookup_values',
        'lookup_categories',
        'audit_events',
        'tenant_settings',
        'employees',
        'tenants',
    ]:
        op.drop_table(table)
    bind = op.get_bind()
    for enum in (TALK_STATUS_ENUM, FREQUENCY_ENUM, ROLE_ENUM):
        enum.drop(bind, checkfirst=True)
