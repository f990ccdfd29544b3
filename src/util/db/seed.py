"""
Données initiales : départements, écoles et compte administrateur.

Chaque entrée est recherchée par sa clé naturelle avant insertion ; relancer le
seed ne crée donc aucun doublon.
"""
import logging
from typing import Dict

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.api.model import Department, School, User
from src.api.service import hash_password
from src.util.db.setting import settings
from src.util.helper.enum import AccountStatusEnum, RoleEnum, SchoolTypeEnum

logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS = [
    ("Informatique", "IT", "Département des Technologies de l'Information"),
    ("Ressources Humaines", "RH", "Département des Ressources Humaines"),
    ("Finance", "FIN", "Département Financier"),
    ("Marketing", "MKT", "Département Marketing"),
    ("Ingénierie", "ENG", "Département Ingénierie"),
    ("Recherche & Développement", "RD", "Département R&D"),
]

DEFAULT_SCHOOLS = [
    ("École Nationale Supérieure d'Informatique et d'Analyse des Systèmes", "ENSIAS", "Rabat",
     SchoolTypeEnum.ENGINEERING_SCHOOL),
    ("Université Mohammed V", "UM5", "Rabat", SchoolTypeEnum.UNIVERSITY),
    ("École Mohammadia d'Ingénieurs", "EMI", "Rabat", SchoolTypeEnum.ENGINEERING_SCHOOL),
    ("ENSA", "ENSA", "Casablanca", SchoolTypeEnum.ENGINEERING_SCHOOL),
    ("HEM Business School", "HEM", "Casablanca", SchoolTypeEnum.BUSINESS_SCHOOL),
]


async def _seed_departments(session: AsyncSession) -> int:
    created = 0
    for name, code, description in DEFAULT_DEPARTMENTS:
        existing = (await session.execute(select(Department.id).where(Department.code == code))).first()
        if existing is None:
            session.add(Department(name=name, code=code, description=description, is_active=True))
            created += 1
    return created


async def _seed_schools(session: AsyncSession) -> int:
    created = 0
    for name, code, city, school_type in DEFAULT_SCHOOLS:
        existing = (await session.execute(select(School.id).where(School.code == code))).first()
        if existing is None:
            session.add(School(name=name, code=code, city=city, country=settings.DEFAULT_COUNTRY, type=school_type))
            created += 1
    return created


async def _seed_admin(session: AsyncSession) -> int:
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.info("ADMIN_EMAIL / ADMIN_PASSWORD non définis : pas de compte administrateur initial")
        return 0
    existing = (await session.execute(select(User.id).where(User.email == settings.ADMIN_EMAIL))).first()
    if existing is not None:
        return 0
    session.add(User(
        email=settings.ADMIN_EMAIL,
        password=hash_password(settings.ADMIN_PASSWORD),
        first_name="Admin",
        last_name="System",
        role=RoleEnum.ADMIN,
        account_status=AccountStatusEnum.ACTIVE,
    ))
    return 1


async def seed_reference_data(session: AsyncSession) -> Dict[str, int]:
    """Insère les données manquantes dans la session de l'appelant (sans commit)"""
    created = {
        "departments": await _seed_departments(session),
        "schools": await _seed_schools(session),
        "admins": await _seed_admin(session),
    }
    await session.flush()
    logger.info(f"Données initiales : {created}")
    return created
