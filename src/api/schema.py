from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from src.util.helper.enum import (
    AcademicLevelEnum, AccountStatusEnum, ActionTypeEnum, DocumentTypeEnum, EntityKindEnum,
    InternStatusEnum, NotificationTypeEnum, ProjectStatusEnum, RoleEnum, SchoolTypeEnum,
    TaskPriorityEnum, TaskStatusEnum,
)
from src.util.helper.identifiers import (
    ActivityTarget, DepartmentId, DocumentTarget, EncadreurId, InternId, NotificationReference,
    ProjectId, SchoolId, UserId,
)

# User Schemas
class UserCreate(BaseModel):
    email: str = Field(..., max_length=255)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    avatar_url: Optional[str] = Field(None, max_length=500)
    role: RoleEnum

class UserUpdate(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    avatar_url: Optional[str] = Field(None, max_length=500)

class UserLight(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: RoleEnum

class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str]
    avatar_url: Optional[str]
    role: RoleEnum
    account_status: AccountStatusEnum
    created_at: datetime
    updated_at: datetime

# Department Schemas
class DepartmentCreate(BaseModel):
    name: str = Field(..., max_length=100)
    code: str = Field(..., max_length=20)
    description: Optional[str] = None

class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = None

class DepartmentLight(BaseModel):
    id: int
    name: str
    code: str

class DepartmentResponse(BaseModel):
    id: int
    name: str
    code: str
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

# School Schemas
class SchoolCreate(BaseModel):
    name: str = Field(..., max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    type: Optional[SchoolTypeEnum] = None

class SchoolUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    type: Optional[SchoolTypeEnum] = None

class SchoolResponse(BaseModel):
    id: int
    name: str
    code: Optional[str]
    city: Optional[str]
    country: Optional[str]
    type: Optional[SchoolTypeEnum]
    created_at: datetime
    updated_at: datetime

# Encadreur Schemas
# current_interns_count / is_available ne sont jamais fournis par l'appelant
class EncadreurCreate(BaseModel):
    user_id: UserId
    department_id: DepartmentId
    specialization: Optional[str] = Field(None, max_length=255)
    max_interns: Optional[int] = Field(None, ge=0)

class EncadreurUpdate(BaseModel):
    department_id: Optional[DepartmentId] = None
    specialization: Optional[str] = Field(None, max_length=255)
    max_interns: Optional[int] = Field(None, ge=0)

class EncadreurLight(BaseModel):
    id: int
    user_id: int
    department_id: int
    is_available: bool

class EncadreurResponse(BaseModel):
    id: int
    user_id: int
    department_id: int
    specialization: Optional[str]
    max_interns: int
    current_interns_count: int
    is_available: bool
    created_at: datetime
    updated_at: datetime

# Intern Schemas
class InternCreate(BaseModel):
    user_id: UserId
    school_id: SchoolId
    department_id: DepartmentId
    encadreur_id: Optional[EncadreurId] = None
    project_id: Optional[ProjectId] = None
    academic_level: AcademicLevelEnum
    major: str = Field(..., max_length=255)
    start_date: date
    end_date: date
    status: InternStatusEnum = InternStatusEnum.PENDING
    cv_path: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    evaluation_score: Optional[Decimal] = Field(None, ge=0, le=20)

class InternUpdate(BaseModel):
    school_id: Optional[SchoolId] = None
    department_id: Optional[DepartmentId] = None
    encadreur_id: Optional[EncadreurId] = None
    project_id: Optional[ProjectId] = None
    academic_level: Optional[AcademicLevelEnum] = None
    major: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[InternStatusEnum] = None
    cv_path: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    evaluation_score: Optional[Decimal] = Field(None, ge=0, le=20)

class InternLight(BaseModel):
    id: int
    user_id: int
    encadreur_id: Optional[int]
    status: InternStatusEnum

class InternResponse(BaseModel):
    id: int
    user_id: int
    school_id: int
    department_id: int
    encadreur_id: Optional[int]
    project_id: Optional[int]
    academic_level: AcademicLevelEnum
    major: str
    start_date: date
    end_date: date
    status: InternStatusEnum
    cv_path: Optional[str]
    notes: Optional[str]
    evaluation_score: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

# Project Schemas
class ProjectCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    department_id: DepartmentId
    encadreur_id: Optional[EncadreurId] = None
    start_date: date
    end_date: date
    status: ProjectStatusEnum = ProjectStatusEnum.PLANNING
    progress_percentage: int = Field(0, ge=0, le=100)
    budget: Optional[Decimal] = Field(None, ge=0)

class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    department_id: Optional[DepartmentId] = None
    encadreur_id: Optional[EncadreurId] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatusEnum] = None
    progress_percentage: Optional[int] = Field(None, ge=0, le=100)
    budget: Optional[Decimal] = Field(None, ge=0)

class ProjectLight(BaseModel):
    id: int
    title: str
    status: ProjectStatusEnum

class ProjectResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    department_id: int
    encadreur_id: Optional[int]
    start_date: date
    end_date: date
    status: ProjectStatusEnum
    progress_percentage: int
    budget: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

# Task Schemas
class TaskCreate(BaseModel):
    project_id: ProjectId
    created_by_user_id: UserId
    assigned_to_user_id: Optional[UserId] = None
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    status: TaskStatusEnum = TaskStatusEnum.TODO
    priority: TaskPriorityEnum = TaskPriorityEnum.MEDIUM
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    actual_hours: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[date] = None

class TaskUpdate(BaseModel):
    assigned_to_user_id: Optional[UserId] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    priority: Optional[TaskPriorityEnum] = None
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    actual_hours: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[date] = None

class TaskResponse(BaseModel):
    id: int
    project_id: int
    assigned_to_user_id: Optional[int]
    created_by_user_id: int
    title: str
    description: Optional[str]
    status: TaskStatusEnum
    priority: TaskPriorityEnum
    estimated_hours: Optional[Decimal]
    actual_hours: Optional[Decimal]
    due_date: Optional[date]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

# Evaluation Schemas
# overall_score est absent des entrées : il est toujours recalculé
class EvaluationCreate(BaseModel):
    intern_id: InternId
    evaluator_id: EncadreurId
    evaluation_date: date
    technical_skills_score: Decimal = Field(..., ge=0, le=20)
    soft_skills_score: Decimal = Field(..., ge=0, le=20)
    attendance_score: Decimal = Field(..., ge=0, le=20)
    comments: Optional[str] = None
    strengths: Optional[str] = None
    areas_for_improvement: Optional[str] = None

class EvaluationUpdate(BaseModel):
    evaluation_date: Optional[date] = None
    technical_skills_score: Optional[Decimal] = Field(None, ge=0, le=20)
    soft_skills_score: Optional[Decimal] = Field(None, ge=0, le=20)
    attendance_score: Optional[Decimal] = Field(None, ge=0, le=20)
    comments: Optional[str] = None
    strengths: Optional[str] = None
    areas_for_improvement: Optional[str] = None

class EvaluationLight(BaseModel):
    id: int
    intern_id: int
    evaluation_date: date
    overall_score: Decimal

class EvaluationResponse(BaseModel):
    id: int
    intern_id: int
    evaluator_id: int
    evaluation_date: date
    technical_skills_score: Decimal
    soft_skills_score: Decimal
    attendance_score: Decimal
    overall_score: Decimal
    comments: Optional[str]
    strengths: Optional[str]
    areas_for_improvement: Optional[str]
    created_at: datetime
    updated_at: datetime

# Document Schemas
class DocumentCreate(BaseModel):
    target: DocumentTarget
    uploaded_by_user_id: UserId
    document_type: DocumentTypeEnum
    file_name: str = Field(..., max_length=255)
    file_path: str = Field(..., max_length=500)
    file_size_kb: int = Field(..., ge=0)
    mime_type: str = Field(..., max_length=100)
    description: Optional[str] = None

class DocumentResponse(BaseModel):
    id: int
    entity_type: EntityKindEnum
    entity_id: int
    uploaded_by_user_id: int
    document_type: DocumentTypeEnum
    file_name: str
    file_path: str
    file_size_kb: int
    mime_type: str
    description: Optional[str]
    created_at: datetime

# Notification Schemas
class NotificationCreate(BaseModel):
    user_id: UserId
    type: NotificationTypeEnum
    title: str = Field(..., max_length=255)
    message: str
    reference: Optional[NotificationReference] = None

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: NotificationTypeEnum
    title: str
    message: str
    reference_type: Optional[EntityKindEnum]
    reference_id: Optional[int]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

# ActivityHistory Schemas
class ActivityCreate(BaseModel):
    user_id: UserId
    action_type: ActionTypeEnum
    target: ActivityTarget
    description: str
    ip_address: Optional[str] = Field(None, max_length=45)
    user_agent: Optional[str] = None

class ActivityResponse(BaseModel):
    id: int
    user_id: int
    action_type: ActionTypeEnum
    entity_type: EntityKindEnum
    entity_id: int
    description: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

# Reporting Schemas (vues d'agrégation)
class EncadreurFullResponse(BaseModel):
    id: int
    user_id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str]
    avatar_url: Optional[str]
    account_status: AccountStatusEnum
    department_id: int
    department_name: str
    department_code: str
    specialization: Optional[str]
    max_interns: int
    current_interns_count: int
    is_available: bool
    created_at: datetime
    updated_at: datetime

class InternFullResponse(BaseModel):
    id: int
    user_id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str]
    avatar_url: Optional[str]
    account_status: AccountStatusEnum
    school_name: Optional[str]
    department_name: Optional[str]
    academic_level: AcademicLevelEnum
    major: str
    start_date: date
    end_date: date
    status: InternStatusEnum
    evaluation_score: Optional[Decimal]
    encadreur_id: Optional[int]
    encadreur_name: Optional[str]
    project_id: Optional[int]
    project_title: Optional[str]
    created_at: datetime
    updated_at: datetime

class DepartmentStatsResponse(BaseModel):
    id: int
    name: str
    code: str
    total_encadreurs: int
    total_interns: int
    active_interns: int
    total_projects: int
    active_projects: int

class CounterCorrectionResponse(BaseModel):
    encadreur_id: int
    stored_count: int
    actual_count: int
    stored_available: bool
    actual_available: bool
