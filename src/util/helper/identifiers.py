"""
Identifiants typés et références polymorphes.

Chaque table possède son propre espace de numérotation. Un UserId et un
EncadreurId de même valeur désignent deux lignes sans rapport : les deux types
ne sont ni comparables ni convertibles l'un vers l'autre. Les entiers nus
venant de la base ou du JSON sont étiquetés à la frontière (constructeur ou
validation pydantic).
"""
from typing import Annotated, Any, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import core_schema

from src.util.helper.enum import EntityKindEnum
from src.util.helper.exceptions import IdentifierTypeError

T = TypeVar("T", bound="TypedId")


class TypedId(int):
    """Entier étiqueté par l'espace de numérotation auquel il appartient"""

    def __new__(cls, value: Any):
        if isinstance(value, TypedId) and not isinstance(value, cls):
            raise IdentifierTypeError(
                f"Impossible de convertir {type(value).__name__}({int(value)}) en {cls.__name__}"
            )
        if isinstance(value, bool) or not isinstance(value, int):
            raise IdentifierTypeError(f"{cls.__name__} attend un entier, reçu {type(value).__name__}")
        if value <= 0:
            raise IdentifierTypeError(f"{cls.__name__} doit être strictement positif, reçu {value}")
        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int(self)})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TypedId) and type(other) is not type(self):
            return False
        return int.__eq__(self, other)

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    __hash__ = int.__hash__

    @classmethod
    def _validate(cls, value: Any):
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        return cls(value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(int),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema: Any, handler: Any) -> dict:
        return {"type": "integer", "minimum": 1, "title": cls.__name__}


class UserId(TypedId):
    """Identifiant de la table users"""


class EncadreurId(TypedId):
    """Identifiant du profil encadreur (table encadreurs, pas users)"""


class InternId(TypedId):
    """Identifiant du profil stagiaire (table interns, pas users)"""


class ProjectId(TypedId):
    pass


class TaskId(TypedId):
    pass


class DepartmentId(TypedId):
    pass


class SchoolId(TypedId):
    pass


def ensure_identifier(value: Any, kind: Type[T], argument: str, optional: bool = False) -> Optional[T]:
    """Vérifie qu'un identifiant appartient au bon espace de numérotation.

    Un entier nu est refusé : l'appelant doit dire explicitement ce qu'il
    désigne. C'est ce qui empêche de passer l'id utilisateur d'un encadreur à
    la place de l'id de son profil.
    """
    if value is None and optional:
        return None
    if not isinstance(value, kind):
        raise IdentifierTypeError(
            f"{argument} attend un {kind.__name__}, reçu {type(value).__name__}({value!r})"
        )
    return value


# ──────────────────────────────────────────────────────────────
# Références polymorphes (union étiquetée)
# ──────────────────────────────────────────────────────────────

class _EntityRef(BaseModel):
    model_config = ConfigDict(frozen=True)


class UserRef(_EntityRef):
    entity_type: Literal["USER"] = "USER"
    id: UserId


class EncadreurRef(_EntityRef):
    entity_type: Literal["ENCADREUR"] = "ENCADREUR"
    id: EncadreurId


class InternRef(_EntityRef):
    entity_type: Literal["INTERN"] = "INTERN"
    id: InternId


class ProjectRef(_EntityRef):
    entity_type: Literal["PROJECT"] = "PROJECT"
    id: ProjectId


class TaskRef(_EntityRef):
    entity_type: Literal["TASK"] = "TASK"
    id: TaskId


class DepartmentRef(_EntityRef):
    entity_type: Literal["DEPARTMENT"] = "DEPARTMENT"
    id: DepartmentId


# Cibles autorisées pour chaque table polymorphe
DocumentTarget = Annotated[Union[InternRef, ProjectRef, TaskRef], Field(discriminator="entity_type")]
NotificationReference = Annotated[
    Union[ProjectRef, TaskRef, InternRef, UserRef], Field(discriminator="entity_type")
]
ActivityTarget = Annotated[
    Union[UserRef, EncadreurRef, InternRef, ProjectRef, TaskRef, DepartmentRef],
    Field(discriminator="entity_type"),
]

_REF_BY_KIND = {
    EntityKindEnum.USER: UserRef,
    EntityKindEnum.ENCADREUR: EncadreurRef,
    EntityKindEnum.INTERN: InternRef,
    EntityKindEnum.PROJECT: ProjectRef,
    EntityKindEnum.TASK: TaskRef,
    EntityKindEnum.DEPARTMENT: DepartmentRef,
}


def entity_ref(kind: EntityKindEnum, raw_id: int):
    """Reconstruit la référence typée à partir du couple stocké (type, id)"""
    ref_cls = _REF_BY_KIND[EntityKindEnum(kind)]
    return ref_cls(id=raw_id)
