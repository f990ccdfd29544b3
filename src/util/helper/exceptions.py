"""
Erreurs de la couche de données.

Les erreurs dérivées de DataIntegrityError sont levées de façon synchrone à la
frontière d'écriture et annulent la transaction en cours. CapacityInvariantDrift
ne sort jamais du module de maintenance des compteurs.
"""
from typing import Any, Optional


class DataIntegrityError(Exception):
    """Erreur de base de la couche de données"""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(DataIntegrityError):
    """L'entité visée par l'opération n'existe pas"""


class ReferentialIntegrityError(DataIntegrityError):
    """Ligne référencée absente, département inactif ou suppression restreinte"""


class RoleMismatchError(ReferentialIntegrityError):
    """Profil rattaché à un utilisateur dont le rôle ne correspond pas"""


class RangeValidationError(DataIntegrityError, ValueError):
    """Score, pourcentage ou période hors des bornes déclarées"""

    def __init__(self, field: str, value: Any, minimum: Any = None, maximum: Any = None,
                 message: Optional[str] = None):
        if message is None:
            message = f"{field}={value} hors de l'intervalle [{minimum}, {maximum}]"
        super().__init__(message, field=field, value=value, minimum=minimum, maximum=maximum)
        self.field = field
        self.value = value


class UniquenessViolation(DataIntegrityError):
    """Email, nom, code ou profil un-à-un déjà existant"""


class StatusTransitionError(DataIntegrityError):
    """Changement de statut de compte non autorisé"""


class CapacityExceededError(DataIntegrityError):
    """Affectation métier refusée : l'encadreur n'a plus de place"""


class CapacityInvariantDrift(Exception):
    """Un compteur d'encadrés passerait sous zéro (incohérence préexistante)"""

    def __init__(self, encadreur_id: int, current: int, delta: int):
        super().__init__(
            f"Compteur incohérent pour l'encadreur {encadreur_id} : {current} {delta:+d} < 0"
        )
        self.encadreur_id = encadreur_id
        self.current = current
        self.delta = delta


class IdentifierTypeError(TypeError):
    """Identifiant d'un autre espace de numérotation passé à une interface typée"""


class AppendOnlyViolation(DataIntegrityError):
    """Modification ou suppression d'une ligne d'historique déjà écrite"""
