"""
Tests des vues d'agrégation (encadreurs, stagiaires, statistiques par département)
"""
import pytest

from src.api.schema import DepartmentCreate, ProjectUpdate
from src.api.service import DepartmentService, ProjectService, ReportingService
from src.util.helper.enum import InternStatusEnum, ProjectStatusEnum
from src.util.helper.exceptions import NotFoundError
from src.util.helper.identifiers import DepartmentId, EncadreurId, InternId, ProjectId


@pytest.mark.asyncio
async def test_encadreur_avec_identite(db_session, department, make_encadreur, make_intern):
    encadreur = await make_encadreur(max_interns=1, first_name="Karim", last_name="Alaoui")
    await make_intern(encadreur_id=EncadreurId(encadreur.id))

    row = await ReportingService(db_session).get_encadreur_full(EncadreurId(encadreur.id))
    assert row.first_name == "Karim"
    assert row.last_name == "Alaoui"
    assert row.department_name == "Informatique"
    assert row.department_code == "IT"
    assert row.current_interns_count == 1
    assert row.is_available is False


@pytest.mark.asyncio
async def test_liste_encadreurs_disponibles(db_session, make_encadreur, make_intern):
    full = await make_encadreur(max_interns=1)
    free = await make_encadreur(first_name="Sara", last_name="Benali")
    await make_intern(encadreur_id=EncadreurId(full.id))

    reporting = ReportingService(db_session)
    assert {r.id for r in await reporting.list_encadreurs_full()} == {full.id, free.id}
    assert [r.id for r in await reporting.list_encadreurs_full(available_only=True)] == [free.id]


@pytest.mark.asyncio
async def test_stagiaire_avec_identite(db_session, make_encadreur, make_intern, make_project):
    encadreur = await make_encadreur(first_name="Karim", last_name="Alaoui")
    project = await make_project(encadreur_id=EncadreurId(encadreur.id))
    intern = await make_intern(encadreur_id=EncadreurId(encadreur.id), project_id=ProjectId(project.id))
    orphan = await make_intern(first_name="Ilyas")

    reporting = ReportingService(db_session)
    row = await reporting.get_intern_full(InternId(intern.id))
    assert row.first_name == "Salma"
    assert row.school_name == "ENSIAS"
    assert row.department_name == "Informatique"
    assert row.encadreur_id == encadreur.id
    assert row.encadreur_name == "Karim Alaoui"
    assert row.project_title == "Plateforme de suivi des stages"

    # Jointures externes : un stagiaire sans encadreur ni projet reste visible
    row = await reporting.get_intern_full(InternId(orphan.id))
    assert row.encadreur_id is None
    assert row.encadreur_name is None
    assert row.project_id is None

    by_encadreur = await reporting.list_interns_full(encadreur_id=EncadreurId(encadreur.id))
    assert [r.id for r in by_encadreur] == [intern.id]


@pytest.mark.asyncio
async def test_filtre_par_statut(db_session, make_intern):
    active = await make_intern(status=InternStatusEnum.ACTIVE)
    await make_intern(status=InternStatusEnum.PENDING, first_name="Zineb")

    rows = await ReportingService(db_session).list_interns_full(status=InternStatusEnum.ACTIVE)
    assert [r.id for r in rows] == [active.id]


@pytest.mark.asyncio
async def test_statistiques_departement(db_session, department, make_encadreur, make_intern, make_project):
    encadreur = await make_encadreur()
    await make_encadreur(first_name="Sara", last_name="Benali")
    await make_intern(encadreur_id=EncadreurId(encadreur.id), status=InternStatusEnum.ACTIVE)
    await make_intern(encadreur_id=EncadreurId(encadreur.id), status=InternStatusEnum.ACTIVE, first_name="Amine")
    await make_intern(status=InternStatusEnum.COMPLETED, first_name="Kenza")
    running = await make_project()
    await make_project(title="Migration ERP")
    await ProjectService(db_session).update(
        ProjectId(running.id), ProjectUpdate(status=ProjectStatusEnum.IN_PROGRESS)
    )

    stats = await ReportingService(db_session).department_stats(DepartmentId(department.id))
    assert len(stats) == 1
    row = stats[0]
    # Les jointures multiples ne doivent pas multiplier les comptes
    assert row.total_encadreurs == 2
    assert row.total_interns == 3
    assert row.active_interns == 2
    assert row.total_projects == 2
    assert row.active_projects == 1


@pytest.mark.asyncio
async def test_departement_sans_dependants(db_session, department):
    empty = await DepartmentService(db_session).create(DepartmentCreate(name="Finance", code="FIN"))

    stats = {row.code: row for row in await ReportingService(db_session).department_stats()}
    assert set(stats) == {"IT", "FIN"}
    row = stats["FIN"]
    assert row.id == empty.id
    assert (row.total_encadreurs, row.total_interns, row.active_interns,
            row.total_projects, row.active_projects) == (0, 0, 0, 0, 0)


@pytest.mark.asyncio
async def test_ligne_absente(db_session):
    with pytest.raises(NotFoundError):
        await ReportingService(db_session).get_intern_full(InternId(999))
