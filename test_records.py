"""
Tests des documents, notifications et de l'historique d'activité
"""
import pytest
from sqlalchemy.future import select

from src.api.model import ActivityHistory
from src.api.schema import ActivityCreate, DocumentCreate, NotificationCreate
from src.api.service import ActivityService, DocumentService, InternService, NotificationService
from src.util.helper.enum import ActionTypeEnum, DocumentTypeEnum, EntityKindEnum, NotificationTypeEnum, RoleEnum
from src.util.helper.exceptions import AppendOnlyViolation, NotFoundError, ReferentialIntegrityError
from src.util.helper.identifiers import (
    EncadreurId, InternId, InternRef, ProjectRef, TaskRef, UserId, UserRef,
)


def get_document_data(target, uploader_id, file_name="rapport_mi_parcours.pdf"):
    return DocumentCreate(
        target=target,
        uploaded_by_user_id=UserId(uploader_id),
        document_type=DocumentTypeEnum.REPORT,
        file_name=file_name,
        file_path=f"/upload/documents/{file_name}",
        file_size_kb=245,
        mime_type="application/pdf",
    )


def get_notification_data(user_id, reference=None, title="Nouvelle tâche"):
    return NotificationCreate(
        user_id=UserId(user_id),
        type=NotificationTypeEnum.TASK_ASSIGNED,
        title=title,
        message="Une tâche vous a été assignée",
        reference=reference,
    )


@pytest.mark.asyncio
async def test_document_rattache_a_un_stagiaire(db_session, make_intern, make_project):
    intern = await make_intern()
    project = await make_project()
    service = DocumentService(db_session)

    document = await service.attach(get_document_data(InternRef(id=intern.id), intern.user_id))
    await service.attach(get_document_data(ProjectRef(id=project.id), intern.user_id, file_name="cahier.pdf"))

    assert document.entity_type == EntityKindEnum.INTERN
    assert document.entity_id == intern.id
    listed = await service.list_for(InternRef(id=intern.id))
    assert [d.id for d in listed] == [document.id]

    await service.delete(document.id)
    with pytest.raises(NotFoundError):
        await service.get(document.id)
    assert await service.list_for(InternRef(id=intern.id)) == []


@pytest.mark.asyncio
async def test_document_cible_inexistante(db_session, make_user):
    uploader = await make_user(RoleEnum.ENCADREUR)
    with pytest.raises(ReferentialIntegrityError):
        await DocumentService(db_session).attach(get_document_data(TaskRef(id=77), uploader.id))


@pytest.mark.asyncio
async def test_notifications(db_session, make_user, make_project):
    user = await make_user(RoleEnum.STAGIAIRE)
    project = await make_project()
    service = NotificationService(db_session)

    first = await service.notify(get_notification_data(user.id, reference=ProjectRef(id=project.id)))
    assert first.reference_type == EntityKindEnum.PROJECT
    assert first.reference_id == project.id
    assert first.is_read is False
    second = await service.notify(get_notification_data(user.id, title="Rappel"))
    assert second.reference_type is None
    await service.notify(get_notification_data(user.id, title="Échéance"))

    read = await service.mark_read(first.id)
    assert read.is_read is True
    assert read.read_at is not None

    assert len(await service.list_for_user(UserId(user.id), unread_only=True)) == 2
    assert await service.mark_all_read(UserId(user.id)) == 2
    assert await service.list_for_user(UserId(user.id), unread_only=True) == []
    assert len(await service.list_for_user(UserId(user.id))) == 3
    assert await service.mark_all_read(UserId(user.id)) == 0


@pytest.mark.asyncio
async def test_notification_reference_inexistante(db_session, make_user):
    user = await make_user(RoleEnum.STAGIAIRE)
    with pytest.raises(ReferentialIntegrityError):
        await NotificationService(db_session).notify(get_notification_data(user.id, reference=InternRef(id=999)))


@pytest.mark.asyncio
async def test_historique_en_ajout_seul(db_session, make_user):
    admin = await make_user(RoleEnum.ADMIN)
    service = ActivityService(db_session)

    entry = await service.record(ActivityCreate(
        user_id=UserId(admin.id),
        action_type=ActionTypeEnum.LOGIN,
        target=UserRef(id=admin.id),
        description="Connexion",
        ip_address="192.168.1.10",
    ))
    assert entry.entity_type == EntityKindEnum.USER
    assert [a.id for a in await service.list_for_user(UserId(admin.id))] == [entry.id]

    stored = (await db_session.execute(select(ActivityHistory).where(ActivityHistory.id == entry.id))).scalar_one()
    stored.description = "Modifiée"
    with pytest.raises(AppendOnlyViolation):
        await db_session.flush()
    await db_session.rollback()

    stored = (await db_session.execute(select(ActivityHistory).where(ActivityHistory.id == entry.id))).scalar_one()
    await db_session.delete(stored)
    with pytest.raises(AppendOnlyViolation):
        await db_session.flush()
    await db_session.rollback()

    # Ni la modification ni la suppression n'ont été persistées
    listed = await service.list_for_user(UserId(admin.id))
    assert [(a.id, a.description) for a in listed] == [(entry.id, "Connexion")]


@pytest.mark.asyncio
async def test_affectation_tracee(db_session, make_user, make_encadreur, make_intern):
    admin = await make_user(RoleEnum.ADMIN)
    encadreur = await make_encadreur()
    intern = await make_intern()

    await InternService(db_session).assign_encadreur(
        InternId(intern.id), EncadreurId(encadreur.id), actor_id=UserId(admin.id)
    )

    entries = await ActivityService(db_session).list_for_entity(InternRef(id=intern.id))
    assert len(entries) == 1
    assert entries[0].action_type == ActionTypeEnum.ASSIGN
    assert entries[0].user_id == admin.id
