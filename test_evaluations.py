"""
Tests des évaluations : moyenne dérivée et bornes des notes
"""
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.future import select

from src.api.model import Evaluation
from src.api.schema import EvaluationCreate, EvaluationUpdate
from src.api.service import EvaluationService
from src.util.helper.exceptions import RangeValidationError, ReferentialIntegrityError
from src.util.helper.identifiers import EncadreurId, InternId
from src.util.helper.scores import compute_overall_score


def get_evaluation_data(intern_id, evaluator_id, **scores):
    """Données de test pour une évaluation"""
    data = {
        "intern_id": intern_id,
        "evaluator_id": evaluator_id,
        "evaluation_date": date(2025, 4, 30),
        "technical_skills_score": Decimal("18"),
        "soft_skills_score": Decimal("14"),
        "attendance_score": Decimal("20"),
        "comments": "Bonne progression sur le trimestre",
    }
    data.update(scores)
    return data


async def count_evaluations(session) -> int:
    return (await session.execute(select(func.count(Evaluation.id)))).scalar_one()


def test_moyenne_arrondie():
    assert compute_overall_score(18, 14, 20) == Decimal("17.33")
    assert compute_overall_score(Decimal("10.5"), 11, 12) == Decimal("11.17")
    assert compute_overall_score(0, 0, 0) == Decimal("0.00")
    assert compute_overall_score(20, 20, 20) == Decimal("20.00")


def test_moyenne_refuse_une_note_manquante_ou_hors_bornes():
    with pytest.raises(RangeValidationError):
        compute_overall_score(None, 14, 20)
    with pytest.raises(RangeValidationError):
        compute_overall_score(25, 14, 20)
    with pytest.raises(RangeValidationError):
        compute_overall_score(18, -1, 20)


@pytest.mark.asyncio
async def test_creation_calcule_la_moyenne(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))

    evaluation = await EvaluationService(db_session).create(
        EvaluationCreate(**get_evaluation_data(InternId(intern.id), EncadreurId(encadreur.id)))
    )
    assert evaluation.overall_score == Decimal("17.33")

    stored = await EvaluationService(db_session).get_by_id(evaluation.id)
    assert stored.overall_score == Decimal("17.33")


@pytest.mark.asyncio
async def test_moyenne_fournie_ignoree(db_session, make_encadreur, make_intern):
    """Une valeur d'overall_score posée à la main est recalculée à l'écriture"""
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))

    evaluation = Evaluation(
        intern_id=intern.id,
        evaluator_id=encadreur.id,
        evaluation_date=date(2025, 5, 15),
        technical_skills_score=18,
        soft_skills_score=14,
        attendance_score=20,
        overall_score=Decimal("5"),
    )
    db_session.add(evaluation)
    await db_session.commit()
    await db_session.refresh(evaluation)
    assert evaluation.overall_score == Decimal("17.33")


@pytest.mark.asyncio
async def test_mise_a_jour_recalcule_la_moyenne(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))
    service = EvaluationService(db_session)
    evaluation = await service.create(
        EvaluationCreate(**get_evaluation_data(InternId(intern.id), EncadreurId(encadreur.id)))
    )

    updated = await service.update(evaluation.id, EvaluationUpdate(technical_skills_score=Decimal("20")))
    assert updated.overall_score == Decimal("18.00")

    listed = await service.list_by_intern(InternId(intern.id))
    assert [e.overall_score for e in listed] == [Decimal("18.00")]


@pytest.mark.asyncio
async def test_note_technique_25_refusee(db_session, make_encadreur, make_intern):
    """technical=25 est refusé et aucune ligne n'est persistée"""
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))

    with pytest.raises(ValidationError):
        EvaluationCreate(**get_evaluation_data(
            InternId(intern.id), EncadreurId(encadreur.id), technical_skills_score=Decimal("25")
        ))

    with pytest.raises(RangeValidationError) as excinfo:
        Evaluation(
            intern_id=intern.id,
            evaluator_id=encadreur.id,
            evaluation_date=date(2025, 4, 30),
            technical_skills_score=25,
            soft_skills_score=14,
            attendance_score=20,
        )
    assert excinfo.value.field == "technical_skills_score"

    assert await count_evaluations(db_session) == 0


@pytest.mark.asyncio
async def test_mise_a_jour_hors_bornes_sans_effet(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id))
    service = EvaluationService(db_session)
    evaluation = await service.create(
        EvaluationCreate(**get_evaluation_data(InternId(intern.id), EncadreurId(encadreur.id)))
    )

    update_data = EvaluationUpdate.model_construct(attendance_score=Decimal("21"))
    with pytest.raises(RangeValidationError):
        await service.update(evaluation.id, update_data)

    stored = await service.get_by_id(evaluation.id)
    assert stored.attendance_score == Decimal("20.00")
    assert stored.overall_score == Decimal("17.33")


@pytest.mark.asyncio
async def test_evaluateur_doit_etre_un_profil_encadreur(db_session, make_encadreur, make_intern):
    encadreur = await make_encadreur()
    intern = await make_intern()

    with pytest.raises(ReferentialIntegrityError):
        await EvaluationService(db_session).create(
            EvaluationCreate(**get_evaluation_data(InternId(intern.id), EncadreurId(encadreur.id + 100)))
        )
    assert await count_evaluations(db_session) == 0
