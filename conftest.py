"""
Fixtures partagées : base SQLite jetable par test et fabriques d'entités.
"""
import itertools
import os
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# SQLite pour les tests (doit précéder l'import de src)
TEST_DB_URL = "sqlite+aiosqlite:///./test_stages.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ.setdefault("LOG_LEVEL", "INFO")

from src.util.db.database import Base, build_engine
from src.api import model  # noqa: F401
from src.api.schema import (
    DepartmentCreate, EncadreurCreate, InternCreate, ProjectCreate, SchoolCreate, UserCreate,
)
from src.api.service import (
    DepartmentService, EncadreurService, InternService, ProjectService, SchoolService, UserService,
)
from src.util.helper.enum import AcademicLevelEnum, InternStatusEnum, RoleEnum
from src.util.helper.identifiers import DepartmentId, EncadreurId, SchoolId, UserId


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = build_engine(TEST_DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def department(db_session):
    """Département actif par défaut"""
    return await DepartmentService(db_session).create(
        DepartmentCreate(name="Informatique", code="IT", description="Technologies de l'Information")
    )


@pytest_asyncio.fixture
async def school(db_session):
    return await SchoolService(db_session).create(SchoolCreate(name="ENSIAS", code="ENSIAS", city="Rabat"))


@pytest.fixture
def make_user(db_session):
    """Fabrique d'utilisateurs aux emails uniques"""
    counter = itertools.count(1)

    async def _make(role=RoleEnum.STAGIAIRE, first_name="Test", last_name=None):
        n = next(counter)
        return await UserService(db_session).create(UserCreate(
            email=f"{role.value.lower()}{n}@stages.test",
            first_name=first_name,
            last_name=last_name or f"Utilisateur{n}",
            role=role,
        ))

    return _make


@pytest.fixture
def make_encadreur(db_session, make_user, department):
    async def _make(max_interns=5, first_name="Karim", last_name="Alaoui", department_id=None):
        user = await make_user(RoleEnum.ENCADREUR, first_name, last_name)
        return await EncadreurService(db_session).create(EncadreurCreate(
            user_id=UserId(user.id),
            department_id=department_id or DepartmentId(department.id),
            specialization="Développement logiciel",
            max_interns=max_interns,
        ))

    return _make


@pytest.fixture
def make_intern(db_session, make_user, department, school):
    async def _make(encadreur_id=None, status=InternStatusEnum.ACTIVE, first_name="Salma",
                    project_id=None, department_id=None):
        user = await make_user(RoleEnum.STAGIAIRE, first_name)
        return await InternService(db_session).create(InternCreate(
            user_id=UserId(user.id),
            school_id=SchoolId(school.id),
            department_id=department_id or DepartmentId(department.id),
            encadreur_id=encadreur_id,
            project_id=project_id,
            academic_level=AcademicLevelEnum.MASTER,
            major="Génie logiciel",
            start_date=date(2025, 2, 1),
            end_date=date(2025, 7, 31),
            status=status,
        ))

    return _make


@pytest.fixture
def make_project(db_session, department):
    async def _make(title="Plateforme de suivi des stages", encadreur_id=None, **kwargs):
        return await ProjectService(db_session).create(ProjectCreate(
            title=title,
            department_id=DepartmentId(department.id),
            encadreur_id=encadreur_id,
            start_date=date(2025, 2, 1),
            end_date=date(2025, 6, 30),
            **kwargs,
        ))

    return _make


@pytest.fixture
def counter_of(db_session):
    """(compteur, disponibilité) tels que stockés pour un encadreur"""
    async def _state(encadreur_id: int):
        encadreur = await EncadreurService(db_session).get(EncadreurId(encadreur_id))
        return encadreur.current_interns_count, encadreur.is_available

    return _state
