"""
Projections de lecture (vues d'agrégation).

Chaque vue est un select() recalculé à chaque requête. La migration initiale
installe les mêmes requêtes comme vues SQL (VIEW_DEFINITIONS).
"""
from sqlalchemy import case, distinct, func, literal
from sqlalchemy.future import select
from sqlalchemy.orm import aliased

from src.api.model import Department, Encadreur, Intern, Project, School, User
from src.util.helper.enum import InternStatusEnum, ProjectStatusEnum


def encadreurs_full_query():
    """Encadreur + identité + département (jointures internes)"""
    return (
        select(
            Encadreur.id.label("id"),
            Encadreur.user_id.label("user_id"),
            User.email.label("email"),
            User.first_name.label("first_name"),
            User.last_name.label("last_name"),
            User.phone.label("phone"),
            User.avatar_url.label("avatar_url"),
            User.account_status.label("account_status"),
            Encadreur.department_id.label("department_id"),
            Department.name.label("department_name"),
            Department.code.label("department_code"),
            Encadreur.specialization.label("specialization"),
            Encadreur.max_interns.label("max_interns"),
            Encadreur.current_interns_count.label("current_interns_count"),
            Encadreur.is_available.label("is_available"),
            Encadreur.created_at.label("created_at"),
            Encadreur.updated_at.label("updated_at"),
        )
        .select_from(Encadreur)
        .join(User, Encadreur.user_id == User.id)
        .join(Department, Encadreur.department_id == Department.id)
    )


def interns_full_query():
    """Stagiaire + identité ; école, département, encadreur et projet optionnels"""
    encadreur_user = aliased(User, name="encadreur_user")
    return (
        select(
            Intern.id.label("id"),
            Intern.user_id.label("user_id"),
            User.email.label("email"),
            User.first_name.label("first_name"),
            User.last_name.label("last_name"),
            User.phone.label("phone"),
            User.avatar_url.label("avatar_url"),
            User.account_status.label("account_status"),
            School.name.label("school_name"),
            Department.name.label("department_name"),
            Intern.academic_level.label("academic_level"),
            Intern.major.label("major"),
            Intern.start_date.label("start_date"),
            Intern.end_date.label("end_date"),
            Intern.status.label("status"),
            Intern.evaluation_score.label("evaluation_score"),
            Encadreur.id.label("encadreur_id"),
            (encadreur_user.first_name + literal(" ") + encadreur_user.last_name).label("encadreur_name"),
            Project.id.label("project_id"),
            Project.title.label("project_title"),
            Intern.created_at.label("created_at"),
            Intern.updated_at.label("updated_at"),
        )
        .select_from(Intern)
        .join(User, Intern.user_id == User.id)
        .outerjoin(School, Intern.school_id == School.id)
        .outerjoin(Department, Intern.department_id == Department.id)
        .outerjoin(Encadreur, Intern.encadreur_id == Encadreur.id)
        .outerjoin(encadreur_user, Encadreur.user_id == encadreur_user.id)
        .outerjoin(Project, Intern.project_id == Project.id)
    )


def department_stats_query():
    """Compteurs par département ; un département sans dépendants a des zéros"""
    return (
        select(
            Department.id.label("id"),
            Department.name.label("name"),
            Department.code.label("code"),
            func.count(distinct(Encadreur.id)).label("total_encadreurs"),
            func.count(distinct(Intern.id)).label("total_interns"),
            func.count(distinct(case((Intern.status == InternStatusEnum.ACTIVE, Intern.id)))).label("active_interns"),
            func.count(distinct(Project.id)).label("total_projects"),
            func.count(
                distinct(case((Project.status == ProjectStatusEnum.IN_PROGRESS, Project.id)))
            ).label("active_projects"),
        )
        .select_from(Department)
        .outerjoin(Encadreur, Encadreur.department_id == Department.id)
        .outerjoin(Intern, Intern.department_id == Department.id)
        .outerjoin(Project, Project.department_id == Department.id)
        .group_by(Department.id, Department.name, Department.code)
    )


VIEW_DEFINITIONS = {
    "view_encadreurs_full": encadreurs_full_query,
    "view_interns_full": interns_full_query,
    "view_department_stats": department_stats_query,
}
