"""
Tests du cycle de vie des comptes et de la purge des utilisateurs
"""
from datetime import date
from decimal import Decimal

import pytest

from src.api.model import User
from src.api.schema import EvaluationCreate, UserCreate, UserUpdate
from src.api.service import EncadreurService, EvaluationService, InternService, UserService, verify_password
from src.util.helper.enum import AccountStatusEnum, RoleEnum
from src.util.helper.exceptions import (
    NotFoundError, ReferentialIntegrityError, StatusTransitionError, UniquenessViolation,
)
from src.util.helper.identifiers import EncadreurId, InternId, UserId


def get_user_data(email="nouveau@stages.test", role=RoleEnum.STAGIAIRE):
    return UserCreate(email=email, first_name="Hajar", last_name="Amrani", role=role)


@pytest.mark.asyncio
async def test_compte_cree_en_attente(db_session):
    user = await UserService(db_session).create(get_user_data())
    assert user.account_status == AccountStatusEnum.PENDING
    assert user.role == RoleEnum.STAGIAIRE
    assert not hasattr(user, "password")


@pytest.mark.asyncio
async def test_email_unique(db_session):
    service = UserService(db_session)
    first = await service.create(get_user_data())
    with pytest.raises(UniquenessViolation):
        await service.create(get_user_data(role=RoleEnum.ENCADREUR))

    other = await service.create(get_user_data(email="autre@stages.test"))
    with pytest.raises(UniquenessViolation):
        await service.update(UserId(other.id), UserUpdate(email="nouveau@stages.test"))

    # Reprendre son propre email n'est pas un doublon
    same = await service.update(UserId(first.id), UserUpdate(email="nouveau@stages.test", phone="0600000000"))
    assert same.phone == "0600000000"


@pytest.mark.asyncio
async def test_activation_definit_le_mot_de_passe(db_session):
    service = UserService(db_session)
    user = await service.create(get_user_data())

    activated = await service.activate(UserId(user.id), "MotDePasse!2025")
    assert activated.account_status == AccountStatusEnum.ACTIVE

    stored = await db_session.get(User, user.id)
    assert stored.password != "MotDePasse!2025"
    assert verify_password("MotDePasse!2025", stored.password)

    with pytest.raises(StatusTransitionError):
        await service.activate(UserId(user.id), "encore")


@pytest.mark.asyncio
async def test_transitions_de_statut(db_session):
    service = UserService(db_session)
    user = await service.create(get_user_data())
    user_id = UserId(user.id)

    # En attente sans mot de passe : pas d'activation directe
    with pytest.raises(StatusTransitionError):
        await service.change_status(user_id, AccountStatusEnum.ACTIVE)
    with pytest.raises(StatusTransitionError):
        await service.change_status(user_id, AccountStatusEnum.SUSPENDED)

    await service.activate(user_id, "secret-initial")
    assert (await service.change_status(user_id, AccountStatusEnum.SUSPENDED)).account_status \
        == AccountStatusEnum.SUSPENDED
    with pytest.raises(StatusTransitionError):
        await service.change_status(user_id, AccountStatusEnum.INACTIVE)
    assert (await service.change_status(user_id, AccountStatusEnum.ACTIVE)).account_status \
        == AccountStatusEnum.ACTIVE
    assert (await service.change_status(user_id, AccountStatusEnum.INACTIVE)).account_status \
        == AccountStatusEnum.INACTIVE
    with pytest.raises(StatusTransitionError):
        await service.change_status(user_id, AccountStatusEnum.PENDING)


@pytest.mark.asyncio
async def test_liste_par_role(db_session, make_user):
    await make_user(RoleEnum.ENCADREUR)
    await make_user(RoleEnum.STAGIAIRE)
    await make_user(RoleEnum.STAGIAIRE)

    interns = await UserService(db_session).list_by_role(RoleEnum.STAGIAIRE)
    assert len(interns) == 2
    assert all(u.role == RoleEnum.STAGIAIRE for u in interns)


@pytest.mark.asyncio
async def test_purge_stagiaire_decremente_le_compteur(db_session, make_encadreur, make_intern, counter_of):
    encadreur = await make_encadreur(max_interns=1)
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))
    assert await counter_of(encadreur.id) == (1, False)

    await UserService(db_session).purge(UserId(intern.user_id))

    assert await counter_of(encadreur.id) == (0, True)
    with pytest.raises(NotFoundError):
        await InternService(db_session).get(InternId(intern.id))
    with pytest.raises(NotFoundError):
        await UserService(db_session).get(UserId(intern.user_id))


@pytest.mark.asyncio
async def test_purge_encadreur_evaluateur_refusee(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))
    await EvaluationService(db_session).create(EvaluationCreate(
        intern_id=InternId(intern.id),
        evaluator_id=EncadreurId(encadreur.id),
        evaluation_date=date(2025, 5, 31),
        technical_skills_score=Decimal("15"),
        soft_skills_score=Decimal("16"),
        attendance_score=Decimal("17"),
    ))

    with pytest.raises(ReferentialIntegrityError) as excinfo:
        await UserService(db_session).purge(UserId(encadreur.user_id))
    assert excinfo.value.context["evaluations"] == 1
    assert (await EncadreurService(db_session).get(EncadreurId(encadreur.id))).current_interns_count == 1


@pytest.mark.asyncio
async def test_purge_encadreur_libere_ses_stagiaires(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))

    await UserService(db_session).purge(UserId(encadreur.user_id))

    with pytest.raises(NotFoundError):
        await EncadreurService(db_session).get(EncadreurId(encadreur.id))
    assert (await InternService(db_session).get(InternId(intern.id))).encadreur_id is None
