"""
Tests des données initiales
"""
import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from src.api.model import Department, School, User
from src.api.service import verify_password
from src.util.db.seed import DEFAULT_DEPARTMENTS, DEFAULT_SCHOOLS, seed_reference_data
from src.util.db.setting import settings
from src.util.helper.enum import AccountStatusEnum, RoleEnum


async def count_rows(session, model) -> int:
    return (await session.execute(select(func.count(model.id)))).scalar_one()


@pytest.mark.asyncio
async def test_seed_idempotent(db_session, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAIL", None)
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", None)

    created = await seed_reference_data(db_session)
    await db_session.commit()
    assert created == {"departments": len(DEFAULT_DEPARTMENTS), "schools": len(DEFAULT_SCHOOLS), "admins": 0}

    again = await seed_reference_data(db_session)
    await db_session.commit()
    assert again == {"departments": 0, "schools": 0, "admins": 0}
    assert await count_rows(db_session, Department) == len(DEFAULT_DEPARTMENTS)
    assert await count_rows(db_session, School) == len(DEFAULT_SCHOOLS)
    assert await count_rows(db_session, User) == 0


@pytest.mark.asyncio
async def test_seed_conserve_les_departements_existants(db_session, department, monkeypatch):
    """Le département IT créé à la main n'est pas dupliqué"""
    monkeypatch.setattr(settings, "ADMIN_EMAIL", None)

    created = await seed_reference_data(db_session)
    await db_session.commit()
    assert created["departments"] == len(DEFAULT_DEPARTMENTS) - 1


@pytest.mark.asyncio
async def test_seed_administrateur(db_session, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAIL", "admin@stages.test")
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", "Admin!Stages2025")

    assert (await seed_reference_data(db_session))["admins"] == 1
    await db_session.commit()
    assert (await seed_reference_data(db_session))["admins"] == 0

    admin = (await db_session.execute(select(User).where(User.email == "admin@stages.test"))).scalar_one()
    assert admin.role == RoleEnum.ADMIN
    assert admin.account_status == AccountStatusEnum.ACTIVE
    assert verify_password("Admin!Stages2025", admin.password)
