from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Text,
    Enum, ForeignKey, UniqueConstraint, Index,
    Numeric, Boolean, CheckConstraint, event
)
from sqlalchemy.orm import relationship, validates

from src.util.helper.enum import (
    AcademicLevelEnum, AccountStatusEnum, ActionTypeEnum, DocumentTypeEnum, EntityKindEnum,
    InternStatusEnum, NotificationTypeEnum, ProjectStatusEnum, RoleEnum, SchoolTypeEnum,
    TaskPriorityEnum, TaskStatusEnum, TimestampMixin, CreatedAtMixin,
    DOCUMENT_ENTITY_KINDS, NOTIFICATION_REFERENCE_KINDS,
)
from src.util.helper.identifiers import (
    DepartmentId, EncadreurId, InternId, ProjectId, SchoolId, TaskId, UserId, entity_ref,
)
from src.util.helper.exceptions import AppendOnlyViolation
from src.util.helper.scores import check_progress, check_score, compute_overall_score
from src.util.db.database import Base


def _in_clause(column: str, kinds) -> str:
    values = ", ".join(f"'{k.value}'" for k in kinds)
    return f"{column} IN ({values})"


# ──────────────────────────────────────────────────────────────
# UTILISATEUR (identité commune à tous les rôles)
# ──────────────────────────────────────────────────────────────
class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=True)  # NULL tant que le compte est en attente
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    role = Column(Enum(RoleEnum, validate_strings=True), nullable=False, index=True)
    account_status = Column(
        Enum(AccountStatusEnum, validate_strings=True),
        default=AccountStatusEnum.PENDING, nullable=False, index=True
    )

    encadreur_profile = relationship("Encadreur", back_populates="user", uselist=False, passive_deletes=True)
    intern_profile = relationship("Intern", back_populates="user", uselist=False, passive_deletes=True)

    __table_args__ = (Index("idx_users_created_at", "created_at"),)

    @property
    def user_id(self) -> UserId:
        return UserId(self.id)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<User {self.id} {self.email} {self.role}>"


# ──────────────────────────────────────────────────────────────
# RÉFÉRENTIELS (départements, écoles)
# ──────────────────────────────────────────────────────────────
class Department(Base, TimestampMixin):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    code = Column(String(20), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    encadreurs = relationship("Encadreur", back_populates="department", passive_deletes=True)
    interns = relationship("Intern", back_populates="department", passive_deletes=True)
    projects = relationship("Project", back_populates="department", passive_deletes=True)

    @property
    def department_id(self) -> DepartmentId:
        return DepartmentId(self.id)

    def __repr__(self):
        return f"<Department {self.id} {self.code}>"


class School(Base, TimestampMixin):
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    code = Column(String(50), unique=True, nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True, default="Morocco")
    type = Column(Enum(SchoolTypeEnum, validate_strings=True), nullable=True, index=True)

    interns = relationship("Intern", back_populates="school", passive_deletes=True)

    @property
    def school_id(self) -> SchoolId:
        return SchoolId(self.id)


# ──────────────────────────────────────────────────────────────
# PROFIL ENCADREUR
# current_interns_count et is_available ne sont écrits que par src.api.capacity
# ──────────────────────────────────────────────────────────────
class Encadreur(Base, TimestampMixin):
    __tablename__ = "encadreurs"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)
    specialization = Column(String(255), nullable=True)
    max_interns = Column(Integer, default=5, nullable=False, comment="Nombre maximum de stagiaires supervisés simultanément")
    current_interns_count = Column(Integer, default=0, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="encadreur_profile")
    department = relationship("Department", back_populates="encadreurs")
    interns = relationship("Intern", back_populates="encadreur", passive_deletes=True)
    projects = relationship("Project", back_populates="encadreur", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("user_id", name="uk_user_encadreur"),
        CheckConstraint("max_interns >= 0", name="ck_encadreurs_max_interns"),
        CheckConstraint("current_interns_count >= 0", name="ck_encadreurs_count_positive"),
        Index("idx_encadreurs_department", "department_id"),
        Index("idx_encadreurs_available", "is_available"),
    )

    @property
    def encadreur_id(self) -> EncadreurId:
        return EncadreurId(self.id)

    @property
    def remaining_capacity(self) -> int:
        return max(self.max_interns - self.current_interns_count, 0)

    def __repr__(self):
        return f"<Encadreur {self.id} user={self.user_id} {self.current_interns_count}/{self.max_interns}>"


# ──────────────────────────────────────────────────────────────
# PROJETS / TÂCHES
# ──────────────────────────────────────────────────────────────
class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)
    encadreur_id = Column(Integer, ForeignKey("encadreurs.id", ondelete="SET NULL"), nullable=True,
                          comment="Encadreur responsable du projet")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Enum(ProjectStatusEnum, validate_strings=True), default=ProjectStatusEnum.PLANNING, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)
    budget = Column(Numeric(10, 2), nullable=True, comment="Budget alloué au projet")

    department = relationship("Department", back_populates="projects")
    encadreur = relationship("Encadreur", back_populates="projects")
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    interns = relationship("Intern", back_populates="project", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("progress_percentage BETWEEN 0 AND 100", name="ck_projects_progress"),
        CheckConstraint("end_date >= start_date", name="ck_projects_dates"),
        Index("idx_projects_status", "status"),
        Index("idx_projects_department", "department_id"),
        Index("idx_projects_encadreur", "encadreur_id"),
        Index("idx_projects_status_dates", "status", "start_date", "end_date"),
    )

    @validates("progress_percentage")
    def _validate_progress(self, key, value):
        return check_progress(value)

    @property
    def project_id(self) -> ProjectId:
        return ProjectId(self.id)


class Task(Base, TimestampMixin):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TaskStatusEnum, validate_strings=True), default=TaskStatusEnum.TODO, nullable=False)
    priority = Column(Enum(TaskPriorityEnum, validate_strings=True), default=TaskPriorityEnum.MEDIUM, nullable=False)
    estimated_hours = Column(Numeric(5, 2), nullable=True)
    actual_hours = Column(Numeric(5, 2), nullable=True)
    due_date = Column(Date, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    project = relationship("Project", back_populates="tasks")
    assignee = relationship("User", foreign_keys=[assigned_to_user_id])
    creator = relationship("User", foreign_keys=[created_by_user_id])

    __table_args__ = (
        CheckConstraint("estimated_hours IS NULL OR estimated_hours >= 0", name="ck_tasks_estimated_hours"),
        CheckConstraint("actual_hours IS NULL OR actual_hours >= 0", name="ck_tasks_actual_hours"),
        Index("idx_tasks_assigned", "assigned_to_user_id"),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_priority", "priority"),
        Index("idx_tasks_due_date", "due_date"),
        Index("idx_tasks_project_status", "project_id", "status"),
    )

    @property
    def task_id(self) -> TaskId:
        return TaskId(self.id)


# ──────────────────────────────────────────────────────────────
# PROFIL STAGIAIRE
# Toute écriture de encadreur_id passe par InternService (compteur de l'encadreur)
# ──────────────────────────────────────────────────────────────
class Intern(Base, TimestampMixin):
    __tablename__ = "interns"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="RESTRICT"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)
    encadreur_id = Column(Integer, ForeignKey("encadreurs.id", ondelete="SET NULL"), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    academic_level = Column(Enum(AcademicLevelEnum, validate_strings=True), nullable=False)
    major = Column(String(255), nullable=False, comment="Spécialité/Filière")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Enum(InternStatusEnum, validate_strings=True), default=InternStatusEnum.PENDING, nullable=False)
    cv_path = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    evaluation_score = Column(Numeric(4, 2), nullable=True)

    user = relationship("User", back_populates="intern_profile")
    school = relationship("School", back_populates="interns")
    department = relationship("Department", back_populates="interns")
    encadreur = relationship("Encadreur", back_populates="interns")
    project = relationship("Project", back_populates="interns")
    evaluations = relationship("Evaluation", back_populates="intern", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("user_id", name="uk_user_intern"),
        CheckConstraint("evaluation_score IS NULL OR evaluation_score BETWEEN 0 AND 20", name="ck_interns_score"),
        CheckConstraint("end_date >= start_date", name="ck_interns_dates"),
        Index("idx_interns_status", "status"),
        Index("idx_interns_school", "school_id"),
        Index("idx_interns_department", "department_id"),
        Index("idx_interns_encadreur", "encadreur_id"),
        Index("idx_interns_project", "project_id"),
        Index("idx_interns_status_dates", "status", "start_date", "end_date"),
    )

    @validates("evaluation_score")
    def _validate_score(self, key, value):
        return check_score(key, value)

    @property
    def intern_id(self) -> InternId:
        return InternId(self.id)

    @property
    def assigned_encadreur(self):
        return EncadreurId(self.encadreur_id) if self.encadreur_id is not None else None


# ──────────────────────────────────────────────────────────────
# ÉVALUATIONS (overall_score dérivé, jamais fourni par l'appelant)
# ──────────────────────────────────────────────────────────────
class Evaluation(Base, TimestampMixin):
    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True)
    intern_id = Column(Integer, ForeignKey("interns.id", ondelete="CASCADE"), nullable=False)
    evaluator_id = Column(Integer, ForeignKey("encadreurs.id", ondelete="RESTRICT"), nullable=False,
                          comment="Encadreur qui évalue")
    evaluation_date = Column(Date, nullable=False)
    technical_skills_score = Column(Numeric(4, 2), nullable=False)
    soft_skills_score = Column(Numeric(4, 2), nullable=False)
    attendance_score = Column(Numeric(4, 2), nullable=False)
    overall_score = Column(Numeric(4, 2), nullable=False)
    comments = Column(Text, nullable=True)
    strengths = Column(Text, nullable=True)
    areas_for_improvement = Column(Text, nullable=True)

    intern = relationship("Intern", back_populates="evaluations")
    evaluator = relationship("Encadreur")

    __table_args__ = (
        CheckConstraint("technical_skills_score BETWEEN 0 AND 20", name="ck_evaluations_technical"),
        CheckConstraint("soft_skills_score BETWEEN 0 AND 20", name="ck_evaluations_soft_skills"),
        CheckConstraint("attendance_score BETWEEN 0 AND 20", name="ck_evaluations_attendance"),
        CheckConstraint("overall_score BETWEEN 0 AND 20", name="ck_evaluations_overall"),
        Index("idx_evaluations_intern", "intern_id"),
        Index("idx_evaluations_evaluator", "evaluator_id"),
        Index("idx_evaluations_date", "evaluation_date"),
    )

    @validates("technical_skills_score", "soft_skills_score", "attendance_score")
    def _validate_component(self, key, value):
        return check_score(key, value)

    def derive_overall_score(self):
        self.overall_score = compute_overall_score(
            self.technical_skills_score, self.soft_skills_score, self.attendance_score
        )


@event.listens_for(Evaluation, "before_insert")
@event.listens_for(Evaluation, "before_update")
def _derive_overall_score(mapper, connection, target):
    # Recalculé à chaque écriture, quelle que soit la valeur fournie
    target.derive_overall_score()


# ──────────────────────────────────────────────────────────────
# DOCUMENTS / NOTIFICATIONS / HISTORIQUE (références polymorphes)
# ──────────────────────────────────────────────────────────────
class Document(Base, CreatedAtMixin):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True)
    entity_type = Column(Enum(EntityKindEnum, validate_strings=True), nullable=False)
    entity_id = Column(Integer, nullable=False)
    uploaded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    document_type = Column(Enum(DocumentTypeEnum, validate_strings=True), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size_kb = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    uploader = relationship("User")

    __table_args__ = (
        CheckConstraint(_in_clause("entity_type", DOCUMENT_ENTITY_KINDS), name="ck_documents_entity_type"),
        CheckConstraint("file_size_kb >= 0", name="ck_documents_file_size"),
        Index("idx_documents_entity", "entity_type", "entity_id"),
        Index("idx_documents_type", "document_type"),
        Index("idx_documents_uploaded_by", "uploaded_by_user_id"),
    )

    @property
    def target(self):
        return entity_ref(self.entity_type, self.entity_id)


class Notification(Base, CreatedAtMixin):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
                     comment="Destinataire de la notification")
    type = Column(Enum(NotificationTypeEnum, validate_strings=True), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    reference_type = Column(Enum(EntityKindEnum, validate_strings=True), nullable=True)
    reference_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    recipient = relationship("User")

    __table_args__ = (
        CheckConstraint(
            "reference_type IS NULL OR " + _in_clause("reference_type", NOTIFICATION_REFERENCE_KINDS),
            name="ck_notifications_reference_type",
        ),
        CheckConstraint(
            "(reference_type IS NULL) = (reference_id IS NULL)", name="ck_notifications_reference_pair"
        ),
        Index("idx_notifications_user", "user_id"),
        Index("idx_notifications_read", "is_read"),
        Index("idx_notifications_type", "type"),
        Index("idx_notifications_created", "created_at"),
        Index("idx_notifications_reference", "reference_type", "reference_id"),
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )

    @property
    def reference(self):
        if self.reference_type is None:
            return None
        return entity_ref(self.reference_type, self.reference_id)


class ActivityHistory(Base, CreatedAtMixin):
    __tablename__ = "activity_history"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
                     comment="Utilisateur ayant effectué l'action")
    action_type = Column(Enum(ActionTypeEnum, validate_strings=True), nullable=False)
    entity_type = Column(Enum(EntityKindEnum, validate_strings=True), nullable=False)
    entity_id = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    actor = relationship("User")

    __table_args__ = (
        Index("idx_activity_user", "user_id"),
        Index("idx_activity_action", "action_type"),
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_created", "created_at"),
    )

    @property
    def target(self):
        return entity_ref(self.entity_type, self.entity_id)


@event.listens_for(ActivityHistory, "before_update")
def _refuse_activity_update(mapper, connection, target):
    raise AppendOnlyViolation(
        f"L'historique d'activité est en ajout seul (modification de l'entrée {target.id})", id=target.id
    )


@event.listens_for(ActivityHistory, "before_delete")
def _refuse_activity_delete(mapper, connection, target):
    raise AppendOnlyViolation(
        f"L'historique d'activité est en ajout seul (suppression de l'entrée {target.id})", id=target.id
    )
