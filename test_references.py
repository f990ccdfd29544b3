"""
Tests des références : existence, départements inactifs, suppressions restreintes
"""
from datetime import date

import pytest

from src.api.schema import DepartmentCreate, DepartmentUpdate, EncadreurCreate, InternCreate, SchoolCreate
from src.api.service import DepartmentService, EncadreurService, InternService, SchoolService
from src.util.helper.enum import AcademicLevelEnum, RoleEnum
from src.util.helper.exceptions import (
    NotFoundError, RangeValidationError, ReferentialIntegrityError, RoleMismatchError, UniquenessViolation,
)
from src.util.helper.identifiers import DepartmentId, SchoolId, UserId


def intern_payload(user_id, school_id, department_id, **overrides):
    payload = {
        "user_id": UserId(user_id),
        "school_id": SchoolId(school_id),
        "department_id": DepartmentId(department_id),
        "academic_level": AcademicLevelEnum.LICENSE,
        "major": "Informatique de gestion",
        "start_date": date(2025, 3, 1),
        "end_date": date(2025, 8, 31),
    }
    payload.update(overrides)
    return InternCreate(**payload)


@pytest.mark.asyncio
async def test_ecole_inexistante(db_session, department, make_user):
    user = await make_user(RoleEnum.STAGIAIRE)
    with pytest.raises(ReferentialIntegrityError):
        await InternService(db_session).create(intern_payload(user.id, 404, department.id))


@pytest.mark.asyncio
async def test_departement_inactif(db_session, department, school, make_user):
    service = DepartmentService(db_session)
    deactivated = await service.deactivate(DepartmentId(department.id))
    assert deactivated.is_active is False

    user = await make_user(RoleEnum.STAGIAIRE)
    with pytest.raises(ReferentialIntegrityError):
        await InternService(db_session).create(intern_payload(user.id, school.id, department.id))

    await service.activate(DepartmentId(department.id))
    intern = await InternService(db_session).create(intern_payload(user.id, school.id, department.id))
    assert intern.department_id == department.id


@pytest.mark.asyncio
async def test_profil_lie_au_mauvais_role(db_session, department, school, make_user):
    stagiaire = await make_user(RoleEnum.STAGIAIRE)
    encadreur_user = await make_user(RoleEnum.ENCADREUR)

    with pytest.raises(RoleMismatchError):
        await EncadreurService(db_session).create(
            EncadreurCreate(user_id=UserId(stagiaire.id), department_id=DepartmentId(department.id))
        )
    with pytest.raises(ReferentialIntegrityError):
        await InternService(db_session).create(intern_payload(encadreur_user.id, school.id, department.id))


@pytest.mark.asyncio
async def test_profil_unique_par_utilisateur(db_session, department, school, make_user):
    user = await make_user(RoleEnum.STAGIAIRE)
    await InternService(db_session).create(intern_payload(user.id, school.id, department.id))
    with pytest.raises(UniquenessViolation):
        await InternService(db_session).create(intern_payload(user.id, school.id, department.id))


@pytest.mark.asyncio
async def test_periode_de_stage_inversee(db_session, department, school, make_user):
    user = await make_user(RoleEnum.STAGIAIRE)
    with pytest.raises(RangeValidationError):
        await InternService(db_session).create(intern_payload(
            user.id, school.id, department.id, start_date=date(2025, 9, 1), end_date=date(2025, 3, 1)
        ))


@pytest.mark.asyncio
async def test_encadreur_utilise_la_capacite_par_defaut(db_session, department, make_user):
    user = await make_user(RoleEnum.ENCADREUR)
    encadreur = await EncadreurService(db_session).create(
        EncadreurCreate(user_id=UserId(user.id), department_id=DepartmentId(department.id))
    )
    assert encadreur.max_interns == 5
    assert encadreur.current_interns_count == 0
    assert encadreur.is_available is True


@pytest.mark.asyncio
async def test_suppression_restreinte_du_departement(db_session, department, make_encadreur):
    await make_encadreur()
    with pytest.raises(ReferentialIntegrityError) as excinfo:
        await DepartmentService(db_session).delete(DepartmentId(department.id))
    assert excinfo.value.context["encadreurs"] == 1
    assert (await DepartmentService(db_session).get(DepartmentId(department.id))).code == "IT"


@pytest.mark.asyncio
async def test_suppression_restreinte_de_l_ecole(db_session, school, make_intern):
    await make_intern()
    with pytest.raises(ReferentialIntegrityError):
        await SchoolService(db_session).delete(SchoolId(school.id))


@pytest.mark.asyncio
async def test_suppression_d_un_departement_libre(db_session):
    service = DepartmentService(db_session)
    created = await service.create(DepartmentCreate(name="Marketing", code="MKT"))
    await service.delete(DepartmentId(created.id))
    with pytest.raises(NotFoundError):
        await service.get(DepartmentId(created.id))


@pytest.mark.asyncio
async def test_unicite_des_referentiels(db_session, department, school):
    with pytest.raises(UniquenessViolation):
        await DepartmentService(db_session).create(DepartmentCreate(name="Autre", code="IT"))
    with pytest.raises(UniquenessViolation):
        await SchoolService(db_session).create(SchoolCreate(name="ENSIAS"))

    other = await DepartmentService(db_session).create(DepartmentCreate(name="Finance", code="FIN"))
    with pytest.raises(UniquenessViolation):
        await DepartmentService(db_session).update(DepartmentId(other.id), DepartmentUpdate(name="Informatique"))


@pytest.mark.asyncio
async def test_pays_par_defaut_de_l_ecole(db_session):
    school = await SchoolService(db_session).create(SchoolCreate(name="Université Hassan II", city="Casablanca"))
    assert school.country == "Morocco"
