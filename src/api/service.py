from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from passlib.context import CryptContext

from src.api.capacity import EncadreurCapacity, availability
from src.api.model import (
    ActivityHistory, Department, Document, Encadreur, Evaluation, Intern, Notification,
    Project, School, Task, User,
)
from src.api.views import department_stats_query, encadreurs_full_query, interns_full_query
from src.api.schema import (
    ActivityCreate, ActivityResponse, CounterCorrectionResponse,
    DepartmentCreate, DepartmentLight, DepartmentResponse, DepartmentStatsResponse, DepartmentUpdate,
    DocumentCreate, DocumentResponse,
    EncadreurCreate, EncadreurFullResponse, EncadreurLight, EncadreurResponse, EncadreurUpdate,
    EvaluationCreate, EvaluationLight, EvaluationResponse, EvaluationUpdate,
    InternCreate, InternFullResponse, InternLight, InternResponse, InternUpdate,
    NotificationCreate, NotificationResponse,
    ProjectCreate, ProjectLight, ProjectResponse, ProjectUpdate,
    SchoolCreate, SchoolResponse, SchoolUpdate,
    TaskCreate, TaskResponse, TaskUpdate,
    UserCreate, UserLight, UserResponse, UserUpdate,
)
from src.util.helper.enum import (
    AccountStatusEnum, ActionTypeEnum, EntityKindEnum, InternStatusEnum, RoleEnum, TaskStatusEnum,
)
from src.util.helper.exceptions import (
    DataIntegrityError, NotFoundError, RangeValidationError, ReferentialIntegrityError,
    RoleMismatchError, StatusTransitionError, UniquenessViolation,
)
from src.util.helper.identifiers import (
    ActivityTarget, DepartmentId, DocumentTarget, EncadreurId, InternId,
    ProjectId, SchoolId, TaskId, UserId, ensure_identifier,
)

from src.util.db.setting import settings
logger = logging.getLogger(__name__)

# Configuration du contexte de hachage des mots de passe
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    """Hache un mot de passe avec bcrypt"""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Vérifie un mot de passe contre son hash"""
    return pwd_context.verify(plain_password, hashed_password)

def check_period(start, end, field: str = "end_date"):
    """Refuse une période dont la fin précède le début"""
    if start is not None and end is not None and end < start:
        raise RangeValidationError(
            field, end, minimum=start,
            message=f"{field} ({end}) est antérieure à la date de début ({start})",
        )

# Transitions de statut de compte autorisées
ACCOUNT_TRANSITIONS: Dict[AccountStatusEnum, tuple] = {
    AccountStatusEnum.PENDING: (AccountStatusEnum.ACTIVE,),
    AccountStatusEnum.ACTIVE: (AccountStatusEnum.INACTIVE, AccountStatusEnum.SUSPENDED),
    AccountStatusEnum.INACTIVE: (AccountStatusEnum.ACTIVE,),
    AccountStatusEnum.SUSPENDED: (AccountStatusEnum.ACTIVE,),
}

class BaseService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.refs = ReferenceResolver(session)

    def _integrity_error(self, error: IntegrityError) -> DataIntegrityError:
        error_msg = str(error.orig) if error.orig is not None else str(error)
        lowered = error_msg.lower()

        # Détecter les erreurs spécifiques
        if "unique" in lowered or "duplicate" in lowered or "dupliquée" in lowered:
            return UniquenessViolation(
                "Une entrée avec ces informations existe déjà dans la base de données.", detail=error_msg
            )
        if "foreign key" in lowered or "clé étrangère" in lowered:
            return ReferentialIntegrityError(
                "Référence invalide ou suppression restreinte par une clé étrangère.", detail=error_msg
            )
        if "check" in lowered:
            return RangeValidationError("contrainte", None, message=f"Contrainte de validation violée : {error_msg}")
        return DataIntegrityError("Violation d'intégrité : contrainte échouée.", detail=error_msg)

    async def commit(self):
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(f"Erreur d'intégrité lors du commit : {str(e.orig)}")
            raise self._integrity_error(e) from e
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Erreur inattendue lors du commit : {str(e)}")
            raise

    @asynccontextmanager
    async def atomic(self):
        """Une opération = une transaction : commit en sortie, rollback sur toute erreur"""
        try:
            yield
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(f"Erreur d'intégrité pendant l'opération : {str(e.orig)}")
            raise self._integrity_error(e) from e
        except Exception:
            await self.session.rollback()
            raise
        await self.commit()

    async def refresh(self, instance):
        await self.session.refresh(instance)

    async def _fetch(self, model, entity_id: int, label: str, lock: bool = False):
        query = select(model).where(model.id == int(entity_id))
        if lock:
            # Relecture sous verrou : l'état en cache de la session peut être périmé
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        entity = result.scalar_one_or_none()
        if entity is None:
            logger.warning(f"{label} ID {int(entity_id)} non trouvé")
            raise NotFoundError(f"{label} avec ID {int(entity_id)} non trouvé.", id=int(entity_id))
        return entity

    async def _count(self, column, condition) -> int:
        result = await self.session.execute(select(func.count(column)).where(condition))
        return result.scalar_one()

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# RÉSOLUTION DES RÉFÉRENCES (toute clé étrangère écrite est vérifiée ici)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class ReferenceResolver:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _require(self, model, entity_id: int, label: str):
        result = await self.session.execute(select(model).where(model.id == int(entity_id)))
        entity = result.scalar_one_or_none()
        if entity is None:
            logger.warning(f"Référence invalide : {label} {int(entity_id)} inexistant")
            raise ReferentialIntegrityError(f"{label} {int(entity_id)} inexistant.", id=int(entity_id))
        return entity

    async def require_department(self, department_id: DepartmentId, require_active: bool = True) -> Department:
        ensure_identifier(department_id, DepartmentId, "department_id")
        department = await self._require(Department, department_id, "Département")
        if require_active and not department.is_active:
            logger.warning(f"Référence refusée : département {department.code} inactif")
            raise ReferentialIntegrityError(
                f"Le département {department.code} est inactif.", id=department.id
            )
        return department

    async def require_school(self, school_id: SchoolId) -> School:
        ensure_identifier(school_id, SchoolId, "school_id")
        return await self._require(School, school_id, "École")

    async def require_user(self, user_id: UserId, role: Optional[RoleEnum] = None) -> User:
        ensure_identifier(user_id, UserId, "user_id")
        user = await self._require(User, user_id, "Utilisateur")
        if role is not None and user.role != role:
            raise RoleMismatchError(
                f"L'utilisateur {user.id} a le rôle {user.role.value}, {role.value} attendu.",
                user_id=user.id, role=user.role, expected_role=role,
            )
        return user

    async def require_encadreur(self, encadreur_id: EncadreurId) -> Encadreur:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        return await self._require(Encadreur, encadreur_id, "Encadreur")

    async def require_intern(self, intern_id: InternId) -> Intern:
        ensure_identifier(intern_id, InternId, "intern_id")
        return await self._require(Intern, intern_id, "Stagiaire")

    async def require_project(self, project_id: ProjectId) -> Project:
        ensure_identifier(project_id, ProjectId, "project_id")
        return await self._require(Project, project_id, "Projet")

    async def require_task(self, task_id: TaskId) -> Task:
        ensure_identifier(task_id, TaskId, "task_id")
        return await self._require(Task, task_id, "Tâche")

    async def require_target(self, target: ActivityTarget):
        """Vérifie l'existence de la cible d'une référence polymorphe"""
        resolvers = {
            EntityKindEnum.USER: self.require_user,
            EntityKindEnum.ENCADREUR: self.require_encadreur,
            EntityKindEnum.INTERN: self.require_intern,
            EntityKindEnum.PROJECT: self.require_project,
            EntityKindEnum.TASK: self.require_task,
            EntityKindEnum.DEPARTMENT: lambda ref_id: self.require_department(ref_id, require_active=False),
        }
        return await resolvers[EntityKindEnum(target.entity_type)](target.id)

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# RÉFÉRENTIELS (départements, écoles)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class DepartmentService(BaseService):
    async def _check_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[int] = None):
        for column, value in ((Department.name, name), (Department.code, code)):
            if value is None:
                continue
            query = select(Department.id).where(column == value)
            if exclude_id is not None:
                query = query.where(Department.id != exclude_id)
            if (await self.session.execute(query)).first() is not None:
                raise UniquenessViolation(f"Un département avec {column.key}={value} existe déjà.", **{column.key: value})

    async def create(self, data: DepartmentCreate) -> DepartmentResponse:
        logger.info(f"Création du département {data.code}")
        async with self.atomic():
            await self._check_unique(data.name, data.code)
            department = Department(**data.model_dump(), is_active=True)
            self.session.add(department)
        await self.refresh(department)
        logger.info(f"Département créé avec ID {department.id}")
        return DepartmentResponse.model_validate(department, from_attributes=True)

    async def get(self, department_id: DepartmentId) -> DepartmentResponse:
        ensure_identifier(department_id, DepartmentId, "department_id")
        department = await self._fetch(Department, department_id, "Département")
        return DepartmentResponse.model_validate(department, from_attributes=True)

    async def update(self, department_id: DepartmentId, data: DepartmentUpdate) -> DepartmentResponse:
        ensure_identifier(department_id, DepartmentId, "department_id")
        async with self.atomic():
            department = await self._fetch(Department, department_id, "Département")
            update_data = data.model_dump(exclude_unset=True)
            await self._check_unique(update_data.get("name"), update_data.get("code"), exclude_id=department.id)
            logger.info(f"Mise à jour du département ID {department.id}")
            for key, value in update_data.items():
                setattr(department, key, value)
        await self.refresh(department)
        return DepartmentResponse.model_validate(department, from_attributes=True)

    async def _set_active(self, department_id: DepartmentId, active: bool) -> DepartmentResponse:
        ensure_identifier(department_id, DepartmentId, "department_id")
        async with self.atomic():
            department = await self._fetch(Department, department_id, "Département")
            department.is_active = active
        await self.refresh(department)
        logger.info(f"Département {department.code} {'réactivé' if active else 'désactivé'}")
        return DepartmentResponse.model_validate(department, from_attributes=True)

    async def deactivate(self, department_id: DepartmentId) -> DepartmentResponse:
        return await self._set_active(department_id, False)

    async def activate(self, department_id: DepartmentId) -> DepartmentResponse:
        return await self._set_active(department_id, True)

    async def delete(self, department_id: DepartmentId):
        ensure_identifier(department_id, DepartmentId, "department_id")
        async with self.atomic():
            department = await self._fetch(Department, department_id, "Département")
            dependants = {
                "encadreurs": await self._count(Encadreur.id, Encadreur.department_id == department.id),
                "interns": await self._count(Intern.id, Intern.department_id == department.id),
                "projects": await self._count(Project.id, Project.department_id == department.id),
            }
            if any(dependants.values()):
                logger.warning(f"Suppression refusée du département {department.code} : {dependants}")
                raise ReferentialIntegrityError(
                    f"Le département {department.code} est encore référencé.", **dependants
                )
            logger.info(f"Suppression du département ID {department.id}")
            await self.session.delete(department)

    async def list_all(self, active_only: bool = False) -> List[DepartmentLight]:
        query = select(Department).order_by(Department.name)
        if active_only:
            query = query.where(Department.is_active.is_(True))
        result = await self.session.execute(query)
        return [DepartmentLight.model_validate(d, from_attributes=True) for d in result.scalars().all()]


class SchoolService(BaseService):
    async def _check_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[int] = None):
        for column, value in ((School.name, name), (School.code, code)):
            if value is None:
                continue
            query = select(School.id).where(column == value)
            if exclude_id is not None:
                query = query.where(School.id != exclude_id)
            if (await self.session.execute(query)).first() is not None:
                raise UniquenessViolation(f"Une école avec {column.key}={value} existe déjà.", **{column.key: value})

    async def create(self, data: SchoolCreate) -> SchoolResponse:
        logger.info(f"Création de l'école {data.name}")
        async with self.atomic():
            await self._check_unique(data.name, data.code)
            school_data = data.model_dump()
            if school_data["country"] is None:
                school_data["country"] = settings.DEFAULT_COUNTRY
            school = School(**school_data)
            self.session.add(school)
        await self.refresh(school)
        logger.info(f"École créée avec ID {school.id}")
        return SchoolResponse.model_validate(school, from_attributes=True)

    async def get(self, school_id: SchoolId) -> SchoolResponse:
        ensure_identifier(school_id, SchoolId, "school_id")
        school = await self._fetch(School, school_id, "École")
        return SchoolResponse.model_validate(school, from_attributes=True)

    async def update(self, school_id: SchoolId, data: SchoolUpdate) -> SchoolResponse:
        ensure_identifier(school_id, SchoolId, "school_id")
        async with self.atomic():
            school = await self._fetch(School, school_id, "École")
            update_data = data.model_dump(exclude_unset=True)
            await self._check_unique(update_data.get("name"), update_data.get("code"), exclude_id=school.id)
            for key, value in update_data.items():
                setattr(school, key, value)
        await self.refresh(school)
        logger.info(f"École ID {school.id} mise à jour")
        return SchoolResponse.model_validate(school, from_attributes=True)

    async def delete(self, school_id: SchoolId):
        ensure_identifier(school_id, SchoolId, "school_id")
        async with self.atomic():
            school = await self._fetch(School, school_id, "École")
            interns = await self._count(Intern.id, Intern.school_id == school.id)
            if interns:
                logger.warning(f"Suppression refusée de l'école {school.id} : {interns} stagiaire(s)")
                raise ReferentialIntegrityError(f"L'école {school.name} est encore référencée.", interns=interns)
            await self.session.delete(school)
        logger.info(f"École ID {int(school_id)} supprimée")

    async def list_all(self) -> List[SchoolResponse]:
        result = await self.session.execute(select(School).order_by(School.name))
        return [SchoolResponse.model_validate(s, from_attributes=True) for s in result.scalars().all()]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# UTILISATEUR (identité, cycle de vie du compte)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class UserService(BaseService):
    async def _check_email(self, email: str, exclude_id: Optional[int] = None):
        query = select(User.id).where(User.email == email)
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        if (await self.session.execute(query)).first() is not None:
            logger.warning(f"Email déjà utilisé : {email}")
            raise UniquenessViolation(
                "Un utilisateur avec cet email existe déjà. Veuillez utiliser un email différent.", email=email
            )

    async def create(self, data: UserCreate) -> UserResponse:
        logger.info(f"Création d'un utilisateur {data.role.value}")
        async with self.atomic():
            await self._check_email(data.email)
            # Compte en attente : le mot de passe est défini à l'activation
            user = User(**data.model_dump(), password=None, account_status=AccountStatusEnum.PENDING)
            self.session.add(user)
        await self.refresh(user)
        logger.info(f"Utilisateur créé avec ID {user.id}")
        return UserResponse.model_validate(user, from_attributes=True)

    async def get(self, user_id: UserId) -> UserResponse:
        ensure_identifier(user_id, UserId, "user_id")
        user = await self._fetch(User, user_id, "Utilisateur")
        return UserResponse.model_validate(user, from_attributes=True)

    async def update(self, user_id: UserId, data: UserUpdate) -> UserResponse:
        ensure_identifier(user_id, UserId, "user_id")
        async with self.atomic():
            user = await self._fetch(User, user_id, "Utilisateur")
            update_data = data.model_dump(exclude_unset=True)
            if update_data.get("email") not in (None, user.email):
                await self._check_email(update_data["email"], exclude_id=user.id)
            for key, value in update_data.items():
                setattr(user, key, value)
        await self.refresh(user)
        logger.info(f"Utilisateur ID {user.id} mis à jour")
        return UserResponse.model_validate(user, from_attributes=True)

    async def activate(self, user_id: UserId, password: str) -> UserResponse:
        """Définit le mot de passe d'un compte en attente et l'active"""
        ensure_identifier(user_id, UserId, "user_id")
        async with self.atomic():
            user = await self._fetch(User, user_id, "Utilisateur")
            if user.account_status != AccountStatusEnum.PENDING:
                raise StatusTransitionError(
                    f"Le compte {user.id} n'est pas en attente ({user.account_status.value}).",
                    user_id=user.id, current=user.account_status,
                )
            user.password = hash_password(password)
            user.account_status = AccountStatusEnum.ACTIVE
        await self.refresh(user)
        logger.info(f"Compte utilisateur {user.id} activé")
        return UserResponse.model_validate(user, from_attributes=True)

    async def change_status(self, user_id: UserId, new_status: AccountStatusEnum) -> UserResponse:
        ensure_identifier(user_id, UserId, "user_id")
        async with self.atomic():
            user = await self._fetch(User, user_id, "Utilisateur")
            current = user.account_status
            if new_status not in ACCOUNT_TRANSITIONS.get(current, ()):
                logger.warning(f"Transition refusée pour l'utilisateur {user.id} : {current.value} -> {new_status.value}")
                raise StatusTransitionError(
                    f"Transition {current.value} -> {new_status.value} non autorisée.",
                    user_id=user.id, current=current, requested=new_status,
                )
            if new_status == AccountStatusEnum.ACTIVE and user.password is None:
                raise StatusTransitionError(
                    f"Le compte {user.id} n'a pas de mot de passe défini.", user_id=user.id
                )
            user.account_status = new_status
        await self.refresh(user)
        logger.info(f"Utilisateur {user.id} : {current.value} -> {new_status.value}")
        return UserResponse.model_validate(user, from_attributes=True)

    async def list_by_role(self, role: RoleEnum) -> List[UserLight]:
        result = await self.session.execute(select(User).where(User.role == role).order_by(User.id))
        return [UserLight.model_validate(u, from_attributes=True) for u in result.scalars().all()]

    async def purge(self, user_id: UserId):
        """Supprime définitivement un utilisateur et ses profils.

        Le profil stagiaire est retiré avant l'utilisateur pour que le compteur
        de son encadreur soit décrémenté dans la même transaction. Les
        notifications et l'historique de l'utilisateur suivent par cascade.
        """
        ensure_identifier(user_id, UserId, "user_id")
        async with self.atomic():
            user = await self._fetch(User, user_id, "Utilisateur")
            blockers = {
                "tasks": await self._count(Task.id, Task.created_by_user_id == user.id),
                "documents": await self._count(Document.id, Document.uploaded_by_user_id == user.id),
            }
            encadreur = (await self.session.execute(
                select(Encadreur).where(Encadreur.user_id == user.id)
            )).scalar_one_or_none()
            if encadreur is not None:
                blockers["evaluations"] = await self._count(Evaluation.id, Evaluation.evaluator_id == encadreur.id)
            if any(blockers.values()):
                logger.warning(f"Purge refusée de l'utilisateur {user.id} : {blockers}")
                raise ReferentialIntegrityError(f"L'utilisateur {user.id} est encore référencé.", **blockers)

            intern = (await self.session.execute(
                select(Intern)
                .where(Intern.user_id == user.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )).scalar_one_or_none()
            if intern is not None:
                previous = intern.assigned_encadreur
                await self.session.execute(delete(Intern).where(Intern.id == intern.id))
                if previous is not None:
                    await EncadreurCapacity(self.session).decrement(previous)

            logger.info(f"Purge de l'utilisateur {user.id} ({user.email})")
            await self.session.execute(delete(User).where(User.id == user.id))
        # Les lignes retirées par cascade côté base sont encore dans la session
        self.session.expire_all()

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# ENCADREUR (profil, capacité)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class EncadreurService(BaseService):
    async def create(self, data: EncadreurCreate) -> EncadreurResponse:
        logger.info(f"Création du profil encadreur pour l'utilisateur {int(data.user_id)}")
        async with self.atomic():
            await self.refs.require_user(data.user_id, role=RoleEnum.ENCADREUR)
            existing = await self._count(Encadreur.id, Encadreur.user_id == int(data.user_id))
            if existing:
                raise UniquenessViolation(
                    f"L'utilisateur {int(data.user_id)} a déjà un profil encadreur.", user_id=int(data.user_id)
                )
            await self.refs.require_department(data.department_id)
            max_interns = data.max_interns if data.max_interns is not None else settings.DEFAULT_MAX_INTERNS
            encadreur = Encadreur(
                user_id=int(data.user_id),
                department_id=int(data.department_id),
                specialization=data.specialization,
                max_interns=max_interns,
                current_interns_count=0,
                is_available=availability(0, max_interns),
            )
            self.session.add(encadreur)
        await self.refresh(encadreur)
        logger.info(f"Encadreur créé avec ID {encadreur.id} (capacité {encadreur.max_interns})")
        return EncadreurResponse.model_validate(encadreur, from_attributes=True)

    async def get(self, encadreur_id: EncadreurId) -> EncadreurResponse:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        encadreur = await self._fetch(Encadreur, encadreur_id, "Encadreur")
        return EncadreurResponse.model_validate(encadreur, from_attributes=True)

    async def get_by_user(self, user_id: UserId) -> EncadreurResponse:
        ensure_identifier(user_id, UserId, "user_id")
        result = await self.session.execute(select(Encadreur).where(Encadreur.user_id == int(user_id)))
        encadreur = result.scalar_one_or_none()
        if encadreur is None:
            raise NotFoundError(f"Aucun profil encadreur pour l'utilisateur {int(user_id)}.", user_id=int(user_id))
        return EncadreurResponse.model_validate(encadreur, from_attributes=True)

    async def update(self, encadreur_id: EncadreurId, data: EncadreurUpdate) -> EncadreurResponse:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        async with self.atomic():
            encadreur = await self._fetch(Encadreur, encadreur_id, "Encadreur")
            update_data = data.model_dump(exclude_unset=True)
            if update_data.get("department_id") is not None:
                await self.refs.require_department(data.department_id)
            logger.info(f"Mise à jour de l'encadreur ID {encadreur.id}")
            for key, value in update_data.items():
                setattr(encadreur, key, value)
            await self.session.flush()
            if "max_interns" in update_data:
                await EncadreurCapacity(self.session).refresh_availability(encadreur.encadreur_id)
        await self.refresh(encadreur)
        return EncadreurResponse.model_validate(encadreur, from_attributes=True)

    async def delete(self, encadreur_id: EncadreurId):
        """Les stagiaires et projets encadrés perdent leur encadreur ; les évaluations bloquent"""
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        async with self.atomic():
            encadreur = await self._fetch(Encadreur, encadreur_id, "Encadreur")
            evaluations = await self._count(Evaluation.id, Evaluation.evaluator_id == encadreur.id)
            if evaluations:
                raise ReferentialIntegrityError(
                    f"L'encadreur {encadreur.id} a rédigé {evaluations} évaluation(s).", evaluations=evaluations
                )
            logger.info(f"Suppression de l'encadreur ID {encadreur.id}")
            await self.session.delete(encadreur)
        self.session.expire_all()

    async def list_by_department(self, department_id: DepartmentId) -> List[EncadreurLight]:
        ensure_identifier(department_id, DepartmentId, "department_id")
        result = await self.session.execute(
            select(Encadreur).where(Encadreur.department_id == int(department_id)).order_by(Encadreur.id)
        )
        return [EncadreurLight.model_validate(e, from_attributes=True) for e in result.scalars().all()]

    async def reconcile_counters(self, encadreur_id: Optional[EncadreurId] = None) -> List[CounterCorrectionResponse]:
        async with self.atomic():
            corrections = await EncadreurCapacity(self.session).reconcile(encadreur_id)
        return [
            CounterCorrectionResponse(
                encadreur_id=int(c.encadreur_id),
                stored_count=c.stored_count,
                actual_count=c.actual_count,
                stored_available=c.stored_available,
                actual_available=c.actual_available,
            )
            for c in corrections
        ]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# STAGIAIRE (toute écriture de encadreur_id ajuste le compteur dans la même transaction)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class InternService(BaseService):
    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.capacity = EncadreurCapacity(session)

    async def _check_references(self, school_id=None, department_id=None, encadreur_id=None, project_id=None):
        if school_id is not None:
            await self.refs.require_school(school_id)
        if department_id is not None:
            await self.refs.require_department(department_id)
        if encadreur_id is not None:
            await self.refs.require_encadreur(encadreur_id)
        if project_id is not None:
            await self.refs.require_project(project_id)

    async def create(self, data: InternCreate) -> InternResponse:
        logger.info(f"Création du profil stagiaire pour l'utilisateur {int(data.user_id)}")
        ensure_identifier(data.encadreur_id, EncadreurId, "encadreur_id", optional=True)
        async with self.atomic():
            await self.refs.require_user(data.user_id, role=RoleEnum.STAGIAIRE)
            existing = await self._count(Intern.id, Intern.user_id == int(data.user_id))
            if existing:
                raise UniquenessViolation(
                    f"L'utilisateur {int(data.user_id)} a déjà un profil stagiaire.", user_id=int(data.user_id)
                )
            await self._check_references(data.school_id, data.department_id, data.encadreur_id, data.project_id)
            check_period(data.start_date, data.end_date)
            if data.encadreur_id is not None and settings.ENFORCE_ENCADREUR_CAPACITY:
                await self.capacity.ensure_available(data.encadreur_id)

            intern = Intern(**data.model_dump())
            self.session.add(intern)
            await self.session.flush()
            if data.encadreur_id is not None:
                await self.capacity.increment(data.encadreur_id)
        await self.refresh(intern)
        logger.info(f"Stagiaire créé avec ID {intern.id}")
        return InternResponse.model_validate(intern, from_attributes=True)

    async def get(self, intern_id: InternId) -> InternResponse:
        ensure_identifier(intern_id, InternId, "intern_id")
        intern = await self._fetch(Intern, intern_id, "Stagiaire")
        return InternResponse.model_validate(intern, from_attributes=True)

    async def update(self, intern_id: InternId, data: InternUpdate) -> InternResponse:
        ensure_identifier(intern_id, InternId, "intern_id")
        async with self.atomic():
            intern = await self._fetch(Intern, intern_id, "Stagiaire", lock=True)
            update_data = data.model_dump(exclude_unset=True)
            previous = intern.assigned_encadreur
            new = data.encadreur_id if "encadreur_id" in update_data else previous
            ensure_identifier(new, EncadreurId, "encadreur_id", optional=True)

            await self._check_references(
                data.school_id if "school_id" in update_data else None,
                data.department_id if "department_id" in update_data else None,
                new if new != previous else None,
                data.project_id if "project_id" in update_data else None,
            )
            check_period(update_data.get("start_date", intern.start_date), update_data.get("end_date", intern.end_date))
            if new is not None and new != previous and settings.ENFORCE_ENCADREUR_CAPACITY:
                await self.capacity.ensure_available(new)

            logger.info(f"Mise à jour du stagiaire ID {intern.id}")
            for key, value in update_data.items():
                setattr(intern, key, value)
            await self.session.flush()
            await self.capacity.transfer(previous, new)
        await self.refresh(intern)
        return InternResponse.model_validate(intern, from_attributes=True)

    async def assign_encadreur(self, intern_id: InternId, encadreur_id: EncadreurId,
                               actor_id: Optional[UserId] = None) -> InternResponse:
        """Affectation métier : refusée si l'encadreur n'a plus de place"""
        ensure_identifier(intern_id, InternId, "intern_id")
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        ensure_identifier(actor_id, UserId, "actor_id", optional=True)
        async with self.atomic():
            intern = await self._fetch(Intern, intern_id, "Stagiaire", lock=True)
            previous = intern.assigned_encadreur
            if previous == encadreur_id:
                logger.info(f"Stagiaire {intern.id} déjà affecté à l'encadreur {int(encadreur_id)}")
                return InternResponse.model_validate(intern, from_attributes=True)

            await self.refs.require_encadreur(encadreur_id)
            await self.capacity.ensure_available(encadreur_id)
            intern.encadreur_id = int(encadreur_id)
            await self.session.flush()
            await self.capacity.transfer(previous, encadreur_id)

            if actor_id is not None:
                self.session.add(ActivityHistory(
                    user_id=int(actor_id),
                    action_type=ActionTypeEnum.ASSIGN,
                    entity_type=EntityKindEnum.INTERN,
                    entity_id=intern.id,
                    description=f"Stagiaire {intern.id} affecté à l'encadreur {int(encadreur_id)}",
                ))
        await self.refresh(intern)
        logger.info(f"Stagiaire {intern.id} affecté à l'encadreur {int(encadreur_id)}")
        return InternResponse.model_validate(intern, from_attributes=True)

    async def unassign_encadreur(self, intern_id: InternId) -> InternResponse:
        ensure_identifier(intern_id, InternId, "intern_id")
        async with self.atomic():
            intern = await self._fetch(Intern, intern_id, "Stagiaire", lock=True)
            previous = intern.assigned_encadreur
            if previous is not None:
                intern.encadreur_id = None
                await self.session.flush()
                await self.capacity.decrement(previous)
        await self.refresh(intern)
        logger.info(f"Stagiaire {intern.id} sans encadreur")
        return InternResponse.model_validate(intern, from_attributes=True)

    async def delete(self, intern_id: InternId):
        ensure_identifier(intern_id, InternId, "intern_id")
        async with self.atomic():
            intern = await self._fetch(Intern, intern_id, "Stagiaire", lock=True)
            previous = intern.assigned_encadreur
            logger.info(f"Suppression du stagiaire ID {intern.id}")
            await self.session.delete(intern)
            await self.session.flush()
            if previous is not None:
                await self.capacity.decrement(previous)
        self.session.expire_all()

    async def list_by_encadreur(self, encadreur_id: EncadreurId) -> List[InternLight]:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        result = await self.session.execute(
            select(Intern).where(Intern.encadreur_id == int(encadreur_id)).order_by(Intern.id)
        )
        return [InternLight.model_validate(i, from_attributes=True) for i in result.scalars().all()]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# PROJETS / TÂCHES
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class ProjectService(BaseService):
    async def create(self, data: ProjectCreate) -> ProjectResponse:
        logger.info(f"Création du projet {data.title}")
        async with self.atomic():
            await self.refs.require_department(data.department_id)
            if data.encadreur_id is not None:
                await self.refs.require_encadreur(data.encadreur_id)
            check_period(data.start_date, data.end_date)
            project = Project(**data.model_dump())
            self.session.add(project)
        await self.refresh(project)
        logger.info(f"Projet créé avec ID {project.id}")
        return ProjectResponse.model_validate(project, from_attributes=True)

    async def get(self, project_id: ProjectId) -> ProjectResponse:
        ensure_identifier(project_id, ProjectId, "project_id")
        project = await self._fetch(Project, project_id, "Projet")
        return ProjectResponse.model_validate(project, from_attributes=True)

    async def update(self, project_id: ProjectId, data: ProjectUpdate) -> ProjectResponse:
        ensure_identifier(project_id, ProjectId, "project_id")
        async with self.atomic():
            project = await self._fetch(Project, project_id, "Projet")
            update_data = data.model_dump(exclude_unset=True)
            if update_data.get("department_id") is not None:
                await self.refs.require_department(data.department_id)
            if update_data.get("encadreur_id") is not None:
                await self.refs.require_encadreur(data.encadreur_id)
            check_period(update_data.get("start_date", project.start_date), update_data.get("end_date", project.end_date))
            for key, value in update_data.items():
                setattr(project, key, value)
        await self.refresh(project)
        logger.info(f"Projet ID {project.id} mis à jour ({project.progress_percentage}%)")
        return ProjectResponse.model_validate(project, from_attributes=True)

    async def delete(self, project_id: ProjectId):
        """Les tâches suivent le projet ; les stagiaires rattachés perdent leur projet"""
        ensure_identifier(project_id, ProjectId, "project_id")
        async with self.atomic():
            project = await self._fetch(Project, project_id, "Projet")
            logger.info(f"Suppression du projet ID {project.id}")
            await self.session.delete(project)
        self.session.expire_all()

    async def list_by_department(self, department_id: DepartmentId) -> List[ProjectLight]:
        ensure_identifier(department_id, DepartmentId, "department_id")
        result = await self.session.execute(
            select(Project).where(Project.department_id == int(department_id)).order_by(Project.start_date)
        )
        return [ProjectLight.model_validate(p, from_attributes=True) for p in result.scalars().all()]


class TaskService(BaseService):
    @staticmethod
    def _apply_status(task: Task, status: TaskStatusEnum):
        task.status = status
        if status == TaskStatusEnum.DONE:
            if task.completed_at is None:
                task.completed_at = datetime.now(timezone.utc)
        else:
            task.completed_at = None

    async def create(self, data: TaskCreate) -> TaskResponse:
        logger.info(f"Création d'une tâche pour le projet {int(data.project_id)}")
        async with self.atomic():
            await self.refs.require_project(data.project_id)
            await self.refs.require_user(data.created_by_user_id)
            if data.assigned_to_user_id is not None:
                await self.refs.require_user(data.assigned_to_user_id)
            task = Task(**data.model_dump(exclude={"status"}))
            self._apply_status(task, data.status)
            self.session.add(task)
        await self.refresh(task)
        logger.info(f"Tâche créée avec ID {task.id}")
        return TaskResponse.model_validate(task, from_attributes=True)

    async def get(self, task_id: TaskId) -> TaskResponse:
        ensure_identifier(task_id, TaskId, "task_id")
        task = await self._fetch(Task, task_id, "Tâche")
        return TaskResponse.model_validate(task, from_attributes=True)

    async def update(self, task_id: TaskId, data: TaskUpdate) -> TaskResponse:
        ensure_identifier(task_id, TaskId, "task_id")
        async with self.atomic():
            task = await self._fetch(Task, task_id, "Tâche")
            update_data = data.model_dump(exclude_unset=True)
            if update_data.get("assigned_to_user_id") is not None:
                await self.refs.require_user(data.assigned_to_user_id)
            for key, value in update_data.items():
                setattr(task, key, value)
        await self.refresh(task)
        return TaskResponse.model_validate(task, from_attributes=True)

    async def change_status(self, task_id: TaskId, status: TaskStatusEnum) -> TaskResponse:
        ensure_identifier(task_id, TaskId, "task_id")
        async with self.atomic():
            task = await self._fetch(Task, task_id, "Tâche")
            previous = task.status
            self._apply_status(task, status)
        await self.refresh(task)
        logger.info(f"Tâche {task.id} : {previous.value} -> {status.value}")
        return TaskResponse.model_validate(task, from_attributes=True)

    async def delete(self, task_id: TaskId):
        ensure_identifier(task_id, TaskId, "task_id")
        async with self.atomic():
            task = await self._fetch(Task, task_id, "Tâche")
            await self.session.delete(task)
        logger.info(f"Tâche ID {int(task_id)} supprimée")

    async def list_by_project(self, project_id: ProjectId) -> List[TaskResponse]:
        ensure_identifier(project_id, ProjectId, "project_id")
        result = await self.session.execute(
            select(Task).where(Task.project_id == int(project_id)).order_by(Task.id)
        )
        return [TaskResponse.model_validate(t, from_attributes=True) for t in result.scalars().all()]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# ÉVALUATIONS (overall_score recalculé par le modèle à chaque écriture)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class EvaluationService(BaseService):
    async def create(self, data: EvaluationCreate) -> EvaluationResponse:
        logger.info(f"Création d'une évaluation pour le stagiaire {int(data.intern_id)}")
        async with self.atomic():
            await self.refs.require_intern(data.intern_id)
            await self.refs.require_encadreur(data.evaluator_id)
            evaluation = Evaluation(**data.model_dump())
            self.session.add(evaluation)
        await self.refresh(evaluation)
        logger.info(f"Évaluation créée avec ID {evaluation.id} (moyenne {evaluation.overall_score})")
        return EvaluationResponse.model_validate(evaluation, from_attributes=True)

    async def get_by_id(self, evaluation_id: int) -> EvaluationResponse:
        evaluation = await self._fetch(Evaluation, evaluation_id, "Évaluation")
        return EvaluationResponse.model_validate(evaluation, from_attributes=True)

    async def update(self, evaluation_id: int, data: EvaluationUpdate) -> EvaluationResponse:
        async with self.atomic():
            evaluation = await self._fetch(Evaluation, evaluation_id, "Évaluation")
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(evaluation, key, value)
        await self.refresh(evaluation)
        logger.info(f"Évaluation ID {evaluation.id} mise à jour (moyenne {evaluation.overall_score})")
        return EvaluationResponse.model_validate(evaluation, from_attributes=True)

    async def delete(self, evaluation_id: int):
        async with self.atomic():
            evaluation = await self._fetch(Evaluation, evaluation_id, "Évaluation")
            await self.session.delete(evaluation)
        logger.info(f"Évaluation ID {evaluation_id} supprimée")

    async def list_by_intern(self, intern_id: InternId) -> List[EvaluationLight]:
        ensure_identifier(intern_id, InternId, "intern_id")
        result = await self.session.execute(
            select(Evaluation).where(Evaluation.intern_id == int(intern_id)).order_by(Evaluation.evaluation_date)
        )
        return [EvaluationLight.model_validate(e, from_attributes=True) for e in result.scalars().all()]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# DOCUMENTS / NOTIFICATIONS / HISTORIQUE
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class DocumentService(BaseService):
    async def attach(self, data: DocumentCreate) -> DocumentResponse:
        target = data.target
        logger.info(f"Ajout du document {data.file_name} sur {target.entity_type} {int(target.id)}")
        async with self.atomic():
            await self.refs.require_target(target)
            await self.refs.require_user(data.uploaded_by_user_id)
            document = Document(
                entity_type=EntityKindEnum(target.entity_type),
                entity_id=int(target.id),
                **data.model_dump(exclude={"target"}),
            )
            self.session.add(document)
        await self.refresh(document)
        return DocumentResponse.model_validate(document, from_attributes=True)

    async def get(self, document_id: int) -> DocumentResponse:
        document = await self._fetch(Document, document_id, "Document")
        return DocumentResponse.model_validate(document, from_attributes=True)

    async def list_for(self, target: DocumentTarget) -> List[DocumentResponse]:
        result = await self.session.execute(
            select(Document)
            .where(Document.entity_type == EntityKindEnum(target.entity_type), Document.entity_id == int(target.id))
            .order_by(Document.id)
        )
        return [DocumentResponse.model_validate(d, from_attributes=True) for d in result.scalars().all()]

    async def delete(self, document_id: int):
        async with self.atomic():
            document = await self._fetch(Document, document_id, "Document")
            await self.session.delete(document)
        logger.info(f"Document ID {document_id} supprimé")


class NotificationService(BaseService):
    async def notify(self, data: NotificationCreate) -> NotificationResponse:
        async with self.atomic():
            await self.refs.require_user(data.user_id)
            reference = data.reference
            if reference is not None:
                await self.refs.require_target(reference)
            notification = Notification(
                user_id=int(data.user_id),
                type=data.type,
                title=data.title,
                message=data.message,
                reference_type=EntityKindEnum(reference.entity_type) if reference is not None else None,
                reference_id=int(reference.id) if reference is not None else None,
                is_read=False,
            )
            self.session.add(notification)
        await self.refresh(notification)
        logger.info(f"Notification {notification.id} envoyée à l'utilisateur {notification.user_id}")
        return NotificationResponse.model_validate(notification, from_attributes=True)

    async def mark_read(self, notification_id: int) -> NotificationResponse:
        async with self.atomic():
            notification = await self._fetch(Notification, notification_id, "Notification")
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = datetime.now(timezone.utc)
        await self.refresh(notification)
        return NotificationResponse.model_validate(notification, from_attributes=True)

    async def mark_all_read(self, user_id: UserId) -> int:
        ensure_identifier(user_id, UserId, "user_id")
        async with self.atomic():
            result = await self.session.execute(
                update(Notification)
                .where(Notification.user_id == int(user_id), Notification.is_read.is_(False))
                .values(is_read=True, read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
        self.session.expire_all()
        logger.info(f"{result.rowcount} notification(s) marquée(s) comme lue(s) pour l'utilisateur {int(user_id)}")
        return result.rowcount

    async def list_for_user(self, user_id: UserId, unread_only: bool = False) -> List[NotificationResponse]:
        ensure_identifier(user_id, UserId, "user_id")
        query = select(Notification).where(Notification.user_id == int(user_id))
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        result = await self.session.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()))
        return [NotificationResponse.model_validate(n, from_attributes=True) for n in result.scalars().all()]


class ActivityService(BaseService):
    """Historique en ajout seul : aucune modification ni suppression exposée"""

    async def record(self, data: ActivityCreate) -> ActivityResponse:
        target = data.target
        async with self.atomic():
            await self.refs.require_user(data.user_id)
            entry = ActivityHistory(
                user_id=int(data.user_id),
                action_type=data.action_type,
                entity_type=EntityKindEnum(target.entity_type),
                entity_id=int(target.id),
                description=data.description,
                ip_address=data.ip_address,
                user_agent=data.user_agent,
            )
            self.session.add(entry)
        await self.refresh(entry)
        logger.info(f"Activité {data.action_type.value} sur {target.entity_type} {int(target.id)}")
        return ActivityResponse.model_validate(entry, from_attributes=True)

    async def list_for_entity(self, target: ActivityTarget) -> List[ActivityResponse]:
        result = await self.session.execute(
            select(ActivityHistory)
            .where(ActivityHistory.entity_type == EntityKindEnum(target.entity_type),
                   ActivityHistory.entity_id == int(target.id))
            .order_by(ActivityHistory.id)
        )
        return [ActivityResponse.model_validate(a, from_attributes=True) for a in result.scalars().all()]

    async def list_for_user(self, user_id: UserId) -> List[ActivityResponse]:
        ensure_identifier(user_id, UserId, "user_id")
        result = await self.session.execute(
            select(ActivityHistory).where(ActivityHistory.user_id == int(user_id)).order_by(ActivityHistory.id)
        )
        return [ActivityResponse.model_validate(a, from_attributes=True) for a in result.scalars().all()]

# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────
# REPORTING (vues d'agrégation, recalculées à chaque lecture)
# ────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────────

class ReportingService(BaseService):
    async def list_encadreurs_full(self, department_id: Optional[DepartmentId] = None,
                                   available_only: bool = False) -> List[EncadreurFullResponse]:
        ensure_identifier(department_id, DepartmentId, "department_id", optional=True)
        query = encadreurs_full_query()
        if department_id is not None:
            query = query.where(Encadreur.department_id == int(department_id))
        if available_only:
            query = query.where(Encadreur.is_available.is_(True))
        rows = (await self.session.execute(query.order_by(Encadreur.id))).mappings().all()
        return [EncadreurFullResponse.model_validate(dict(row)) for row in rows]

    async def get_encadreur_full(self, encadreur_id: EncadreurId) -> EncadreurFullResponse:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        row = (await self.session.execute(
            encadreurs_full_query().where(Encadreur.id == int(encadreur_id))
        )).mappings().first()
        if row is None:
            raise NotFoundError(f"Encadreur avec ID {int(encadreur_id)} non trouvé.", id=int(encadreur_id))
        return EncadreurFullResponse.model_validate(dict(row))

    async def list_interns_full(self, encadreur_id: Optional[EncadreurId] = None,
                                status: Optional[InternStatusEnum] = None) -> List[InternFullResponse]:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id", optional=True)
        query = interns_full_query()
        if encadreur_id is not None:
            query = query.where(Intern.encadreur_id == int(encadreur_id))
        if status is not None:
            query = query.where(Intern.status == status)
        rows = (await self.session.execute(query.order_by(Intern.id))).mappings().all()
        return [InternFullResponse.model_validate(dict(row)) for row in rows]

    async def get_intern_full(self, intern_id: InternId) -> InternFullResponse:
        ensure_identifier(intern_id, InternId, "intern_id")
        row = (await self.session.execute(
            interns_full_query().where(Intern.id == int(intern_id))
        )).mappings().first()
        if row is None:
            raise NotFoundError(f"Stagiaire avec ID {int(intern_id)} non trouvé.", id=int(intern_id))
        return InternFullResponse.model_validate(dict(row))

    async def department_stats(self, department_id: Optional[DepartmentId] = None) -> List[DepartmentStatsResponse]:
        ensure_identifier(department_id, DepartmentId, "department_id", optional=True)
        query = department_stats_query()
        if department_id is not None:
            query = query.where(Department.id == int(department_id))
        rows = (await self.session.execute(query.order_by(Department.id))).mappings().all()
        return [DepartmentStatsResponse.model_validate(dict(row)) for row in rows]
