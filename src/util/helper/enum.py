from enum import Enum
from sqlalchemy import Column, DateTime, func

# ──────────────────────────────────────────────────────────────────────────────
# Mixins utilitaires
# ──────────────────────────────────────────────────────────────────────────────

class TimestampMixin(object):
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CreatedAtMixin(object):
    # Tables en ajout seul (documents, notifications, historique)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

# ──────────────────────────────────────────────────────────────────────────────
# Enums utilisateurs
# ──────────────────────────────────────────────────────────────────────────────

class RoleEnum(str, Enum):
    ADMIN = "ADMIN"
    ENCADREUR = "ENCADREUR"
    STAGIAIRE = "STAGIAIRE"


class AccountStatusEnum(str, Enum):
    PENDING = "PENDING"        # Mot de passe non défini
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"

# ──────────────────────────────────────────────────────────────────────────────
# Enums référentiels
# ──────────────────────────────────────────────────────────────────────────────

class SchoolTypeEnum(str, Enum):
    UNIVERSITY = "UNIVERSITY"
    ENGINEERING_SCHOOL = "ENGINEERING_SCHOOL"
    BUSINESS_SCHOOL = "BUSINESS_SCHOOL"
    TECHNICAL_SCHOOL = "TECHNICAL_SCHOOL"
    OTHER = "OTHER"


class AcademicLevelEnum(str, Enum):
    LICENSE = "LICENSE"
    MASTER = "MASTER"
    DOCTORATE = "DOCTORATE"
    ENGINEERING = "ENGINEERING"
    OTHER = "OTHER"

# ──────────────────────────────────────────────────────────────────────────────
# Enums de cycle de vie
# ──────────────────────────────────────────────────────────────────────────────

class InternStatusEnum(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"


class ProjectStatusEnum(str, Enum):
    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"


class TaskStatusEnum(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TaskPriorityEnum(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

# ──────────────────────────────────────────────────────────────────────────────
# Enums des enregistrements auxiliaires
# ──────────────────────────────────────────────────────────────────────────────

class NotificationTypeEnum(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    PROJECT_UPDATE = "PROJECT_UPDATE"
    DEADLINE = "DEADLINE"


class ActionTypeEnum(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    ASSIGN = "ASSIGN"
    COMPLETE = "COMPLETE"


class DocumentTypeEnum(str, Enum):
    CV = "CV"
    REPORT = "REPORT"
    CONTRACT = "CONTRACT"
    EVALUATION = "EVALUATION"
    OTHER = "OTHER"

# ──────────────────────────────────────────────────────────────────────────────
# Types d'entités pour les références polymorphes
# ──────────────────────────────────────────────────────────────────────────────

class EntityKindEnum(str, Enum):
    USER = "USER"
    ENCADREUR = "ENCADREUR"
    INTERN = "INTERN"
    PROJECT = "PROJECT"
    TASK = "TASK"
    DEPARTMENT = "DEPARTMENT"


# Sous-ensembles autorisés par table
DOCUMENT_ENTITY_KINDS = (EntityKindEnum.INTERN, EntityKindEnum.PROJECT, EntityKindEnum.TASK)
NOTIFICATION_REFERENCE_KINDS = (
    EntityKindEnum.PROJECT, EntityKindEnum.TASK, EntityKindEnum.INTERN, EntityKindEnum.USER
)
ACTIVITY_ENTITY_KINDS = tuple(EntityKindEnum)
