"""initial_schema

Revision ID: 3f2a9c71d4e8
Revises:
Create Date: 2026-10-19 09:12:40.118305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from src.api.views import VIEW_DEFINITIONS


# revision identifiers, used by Alembic.
revision: str = '3f2a9c71d4e8'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum('ADMIN', 'ENCADREUR', 'STAGIAIRE', name='roleenum')
account_status_enum = sa.Enum('PENDING', 'ACTIVE', 'INACTIVE', 'SUSPENDED', name='accountstatusenum')
school_type_enum = sa.Enum(
    'UNIVERSITY', 'ENGINEERING_SCHOOL', 'BUSINESS_SCHOOL', 'TECHNICAL_SCHOOL', 'OTHER', name='schooltypeenum'
)
academic_level_enum = sa.Enum('LICENSE', 'MASTER', 'DOCTORATE', 'ENGINEERING', 'OTHER', name='academiclevelenum')
intern_status_enum = sa.Enum('PENDING', 'ACTIVE', 'COMPLETED', 'CANCELLED', 'SUSPENDED', name='internstatusenum')
project_status_enum = sa.Enum(
    'PLANNING', 'IN_PROGRESS', 'COMPLETED', 'ON_HOLD', 'CANCELLED', name='projectstatusenum'
)
task_status_enum = sa.Enum('TODO', 'IN_PROGRESS', 'REVIEW', 'DONE', 'CANCELLED', name='taskstatusenum')
task_priority_enum = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='taskpriorityenum')
notification_type_enum = sa.Enum(
    'INFO', 'WARNING', 'SUCCESS', 'ERROR', 'TASK_ASSIGNED', 'PROJECT_UPDATE', 'DEADLINE', name='notificationtypeenum'
)
action_type_enum = sa.Enum(
    'CREATE', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', 'ASSIGN', 'COMPLETE', name='actiontypeenum'
)
document_type_enum = sa.Enum('CV', 'REPORT', 'CONTRACT', 'EVALUATION', 'OTHER', name='documenttypeenum')
entity_kind_enum = sa.Enum(
    'USER', 'ENCADREUR', 'INTERN', 'PROJECT', 'TASK', 'DEPARTMENT', name='entitykindenum'
)


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)
        )
    return columns


def _shared(enum):
    """Type enum utilisé par plusieurs tables : créé une seule fois sous PostgreSQL"""
    if op.get_context().dialect.name == "postgresql":
        return postgresql.ENUM(*enum.enums, name=enum.name, create_type=False)
    return enum


def upgrade() -> None:
    """Upgrade schema."""
    if op.get_context().dialect.name == "postgresql":
        entity_kind_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('account_status', account_status_enum, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_account_status', 'users', ['account_status'])
    op.create_index('idx_users_created_at', 'users', ['created_at'])

    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_departments_code', 'departments', ['code'], unique=True)
    op.create_index('ix_departments_is_active', 'departments', ['is_active'])

    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('type', school_type_enum, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_schools_name', 'schools', ['name'], unique=True)
    op.create_index('ix_schools_type', 'schools', ['type'])

    op.create_table(
        'encadreurs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('specialization', sa.String(length=255), nullable=True),
        sa.Column('max_interns', sa.Integer(), nullable=False,
                  comment='Nombre maximum de stagiaires supervisés simultanément'),
        sa.Column('current_interns_count', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uk_user_encadreur'),
        sa.CheckConstraint('max_interns >= 0', name='ck_encadreurs_max_interns'),
        sa.CheckConstraint('current_interns_count >= 0', name='ck_encadreurs_count_positive'),
    )
    op.create_index('idx_encadreurs_department', 'encadreurs', ['department_id'])
    op.create_index('idx_encadreurs_available', 'encadreurs', ['is_available'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('encadreur_id', sa.Integer(), nullable=True, comment='Encadreur responsable du projet'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', project_status_enum, nullable=False),
        sa.Column('progress_percentage', sa.Integer(), nullable=False),
        sa.Column('budget', sa.Numeric(precision=10, scale=2), nullable=True, comment='Budget alloué au projet'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['encadreur_id'], ['encadreurs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('progress_percentage BETWEEN 0 AND 100', name='ck_projects_progress'),
        sa.CheckConstraint('end_date >= start_date', name='ck_projects_dates'),
    )
    op.create_index('idx_projects_status', 'projects', ['status'])
    op.create_index('idx_projects_department', 'projects', ['department_id'])
    op.create_index('idx_projects_encadreur', 'projects', ['encadreur_id'])
    op.create_index('idx_projects_status_dates', 'projects', ['status', 'start_date', 'end_date'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('assigned_to_user_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', task_status_enum, nullable=False),
        sa.Column('priority', task_priority_enum, nullable=False),
        sa.Column('estimated_hours', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('actual_hours', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_to_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('estimated_hours IS NULL OR estimated_hours >= 0', name='ck_tasks_estimated_hours'),
        sa.CheckConstraint('actual_hours IS NULL OR actual_hours >= 0', name='ck_tasks_actual_hours'),
    )
    op.create_index('idx_tasks_assigned', 'tasks', ['assigned_to_user_id'])
    op.create_index('idx_tasks_status', 'tasks', ['status'])
    op.create_index('idx_tasks_priority', 'tasks', ['priority'])
    op.create_index('idx_tasks_due_date', 'tasks', ['due_date'])
    op.create_index('idx_tasks_project_status', 'tasks', ['project_id', 'status'])

    op.create_table(
        'interns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('encadreur_id', sa.Integer(), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('academic_level', academic_level_enum, nullable=False),
        sa.Column('major', sa.String(length=255), nullable=False, comment='Spécialité/Filière'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', intern_status_enum, nullable=False),
        sa.Column('cv_path', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('evaluation_score', sa.Numeric(precision=4, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['encadreur_id'], ['encadreurs.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uk_user_intern'),
        sa.CheckConstraint('evaluation_score IS NULL OR evaluation_score BETWEEN 0 AND 20', name='ck_interns_score'),
        sa.CheckConstraint('end_date >= start_date', name='ck_interns_dates'),
    )
    op.create_index('idx_interns_status', 'interns', ['status'])
    op.create_index('idx_interns_school', 'interns', ['school_id'])
    op.create_index('idx_interns_department', 'interns', ['department_id'])
    op.create_index('idx_interns_encadreur', 'interns', ['encadreur_id'])
    op.create_index('idx_interns_project', 'interns', ['project_id'])
    op.create_index('idx_interns_status_dates', 'interns', ['status', 'start_date', 'end_date'])

    op.create_table(
        'evaluations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('intern_id', sa.Integer(), nullable=False),
        sa.Column('evaluator_id', sa.Integer(), nullable=False, comment='Encadreur qui évalue'),
        sa.Column('evaluation_date', sa.Date(), nullable=False),
        sa.Column('technical_skills_score', sa.Numeric(precision=4, scale=2), nullable=False),
        sa.Column('soft_skills_score', sa.Numeric(precision=4, scale=2), nullable=False),
        sa.Column('attendance_score', sa.Numeric(precision=4, scale=2), nullable=False),
        sa.Column('overall_score', sa.Numeric(precision=4, scale=2), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('strengths', sa.Text(), nullable=True),
        sa.Column('areas_for_improvement', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['intern_id'], ['interns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['evaluator_id'], ['encadreurs.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('technical_skills_score BETWEEN 0 AND 20', name='ck_evaluations_technical'),
        sa.CheckConstraint('soft_skills_score BETWEEN 0 AND 20', name='ck_evaluations_soft_skills'),
        sa.CheckConstraint('attendance_score BETWEEN 0 AND 20', name='ck_evaluations_attendance'),
        sa.CheckConstraint('overall_score BETWEEN 0 AND 20', name='ck_evaluations_overall'),
    )
    op.create_index('idx_evaluations_intern', 'evaluations', ['intern_id'])
    op.create_index('idx_evaluations_evaluator', 'evaluations', ['evaluator_id'])
    op.create_index('idx_evaluations_date', 'evaluations', ['evaluation_date'])

    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', _shared(entity_kind_enum), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), nullable=False),
        sa.Column('document_type', document_type_enum, nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_path', sa.String(length=500), nullable=False),
        sa.Column('file_size_kb', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("entity_type IN ('INTERN', 'PROJECT', 'TASK')", name='ck_documents_entity_type'),
        sa.CheckConstraint('file_size_kb >= 0', name='ck_documents_file_size'),
    )
    op.create_index('idx_documents_entity', 'documents', ['entity_type', 'entity_id'])
    op.create_index('idx_documents_type', 'documents', ['document_type'])
    op.create_index('idx_documents_uploaded_by', 'documents', ['uploaded_by_user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='Destinataire de la notification'),
        sa.Column('type', notification_type_enum, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('reference_type', _shared(entity_kind_enum), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "reference_type IS NULL OR reference_type IN ('PROJECT', 'TASK', 'INTERN', 'USER')",
            name='ck_notifications_reference_type',
        ),
        sa.CheckConstraint('(reference_type IS NULL) = (reference_id IS NULL)', name='ck_notifications_reference_pair'),
    )
    op.create_index('idx_notifications_user', 'notifications', ['user_id'])
    op.create_index('idx_notifications_read', 'notifications', ['is_read'])
    op.create_index('idx_notifications_type', 'notifications', ['type'])
    op.create_index('idx_notifications_created', 'notifications', ['created_at'])
    op.create_index('idx_notifications_reference', 'notifications', ['reference_type', 'reference_id'])
    op.create_index('idx_notifications_user_read', 'notifications', ['user_id', 'is_read'])

    op.create_table(
        'activity_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment="Utilisateur ayant effectué l'action"),
        sa.Column('action_type', action_type_enum, nullable=False),
        sa.Column('entity_type', _shared(entity_kind_enum), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_activity_user', 'activity_history', ['user_id'])
    op.create_index('idx_activity_action', 'activity_history', ['action_type'])
    op.create_index('idx_activity_entity', 'activity_history', ['entity_type', 'entity_id'])
    op.create_index('idx_activity_created', 'activity_history', ['created_at'])

    # Vues d'agrégation, compilées depuis les mêmes requêtes que ReportingService
    dialect = op.get_context().dialect
    for view_name, build_query in VIEW_DEFINITIONS.items():
        compiled = build_query().compile(dialect=dialect, compile_kwargs={"literal_binds": True})
        op.execute(f"CREATE VIEW {view_name} AS {compiled}")


def downgrade() -> None:
    """Downgrade schema."""
    for view_name in reversed(list(VIEW_DEFINITIONS)):
        op.execute(f"DROP VIEW IF EXISTS {view_name}")

    for table in (
        'activity_history', 'notifications', 'documents', 'evaluations', 'interns',
        'tasks', 'projects', 'encadreurs', 'schools', 'departments', 'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        entity_kind_enum, document_type_enum, action_type_enum, notification_type_enum,
        task_priority_enum, task_status_enum, project_status_enum, intern_status_enum,
        academic_level_enum, school_type_enum, account_status_enum, role_enum,
    ):
        enum.drop(bind, checkfirst=True)
