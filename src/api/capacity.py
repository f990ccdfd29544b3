"""
Maintenance du compteur d'encadrés.

Pour chaque encadreur, en dehors d'une transaction en cours :

    current_interns_count == nombre de stagiaires dont encadreur_id pointe sur lui
    is_available == current_interns_count < max_interns

Ce module est le seul à écrire ces deux colonnes. Chaque ajustement verrouille
la ligne de l'encadreur (SELECT ... FOR UPDATE) dans la transaction de
l'écriture du stagiaire qui le déclenche ; le commit ou le rollback de cette
transaction couvre donc les deux écritures.

L'appelant lit l'ancien encadreur_id sur la ligne du stagiaire verrouillée et
relue (populate_existing), jamais sur une copie en cache de la session.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.api.model import Encadreur, Intern
from src.util.helper.exceptions import (
    CapacityExceededError, CapacityInvariantDrift, ReferentialIntegrityError,
)
from src.util.helper.identifiers import EncadreurId, ensure_identifier

logger = logging.getLogger(__name__)


def apply_delta(encadreur_id: int, current: int, delta: int) -> int:
    """Arithmétique stricte du compteur ; lève CapacityInvariantDrift sous zéro"""
    updated = current + delta
    if updated < 0:
        raise CapacityInvariantDrift(encadreur_id, current, delta)
    return updated


def availability(count: int, max_interns: int) -> bool:
    return count < max_interns


@dataclass
class CounterCorrection:
    encadreur_id: EncadreurId
    stored_count: int
    actual_count: int
    stored_available: bool
    actual_available: bool


class EncadreurCapacity:
    """Incréments / décréments du compteur, dans la session de l'appelant"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _lock(self, encadreur_id: EncadreurId) -> Encadreur:
        query = (
            select(Encadreur)
            .where(Encadreur.id == int(encadreur_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        encadreur = result.scalar_one_or_none()
        if encadreur is None:
            raise ReferentialIntegrityError(
                f"Encadreur {int(encadreur_id)} introuvable", encadreur_id=int(encadreur_id)
            )
        return encadreur

    def _store(self, encadreur: Encadreur, count: int) -> None:
        encadreur.current_interns_count = count
        encadreur.is_available = availability(count, encadreur.max_interns)

    async def _adjust(self, encadreur_id: EncadreurId, delta: int) -> Encadreur:
        encadreur = await self._lock(encadreur_id)
        try:
            count = apply_delta(encadreur.id, encadreur.current_interns_count, delta)
        except CapacityInvariantDrift as drift:
            logger.warning(f"{drift} : compteur ramené à 0")
            count = 0
        self._store(encadreur, count)
        await self.session.flush()
        logger.info(
            f"Encadreur {encadreur.id} : {encadreur.current_interns_count}/{encadreur.max_interns} "
            f"(disponible={encadreur.is_available})"
        )
        return encadreur

    async def increment(self, encadreur_id: EncadreurId) -> Encadreur:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        return await self._adjust(encadreur_id, +1)

    async def decrement(self, encadreur_id: EncadreurId) -> Encadreur:
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        return await self._adjust(encadreur_id, -1)

    async def transfer(self, previous: Optional[EncadreurId], new: Optional[EncadreurId]) -> None:
        """Report d'un stagiaire de previous vers new (chacun pouvant être None)"""
        ensure_identifier(previous, EncadreurId, "previous", optional=True)
        ensure_identifier(new, EncadreurId, "new", optional=True)
        if previous == new:
            return

        # Verrous pris par id croissant pour éviter les interblocages entre deux transferts croisés
        if previous is not None and new is not None:
            for encadreur_id in sorted((previous, new)):
                await self._lock(encadreur_id)

        if previous is not None:
            await self._adjust(previous, -1)
        if new is not None:
            await self._adjust(new, +1)

    async def ensure_available(self, encadreur_id: EncadreurId) -> Encadreur:
        """Verrouille l'encadreur et refuse s'il n'a plus de place"""
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        encadreur = await self._lock(encadreur_id)
        if not encadreur.is_available:
            logger.warning(
                f"Affectation refusée : encadreur {encadreur.id} complet "
                f"({encadreur.current_interns_count}/{encadreur.max_interns})"
            )
            raise CapacityExceededError(
                f"L'encadreur {encadreur.id} a atteint sa capacité ({encadreur.max_interns} stagiaires)",
                encadreur_id=encadreur.id,
                current_interns_count=encadreur.current_interns_count,
                max_interns=encadreur.max_interns,
            )
        return encadreur

    async def refresh_availability(self, encadreur_id: EncadreurId) -> Encadreur:
        """Recalcule is_available après un changement de max_interns"""
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id")
        encadreur = await self._lock(encadreur_id)
        self._store(encadreur, encadreur.current_interns_count)
        await self.session.flush()
        return encadreur

    async def actual_counts(self) -> Dict[int, int]:
        query = (
            select(Intern.encadreur_id, func.count(Intern.id))
            .where(Intern.encadreur_id.isnot(None))
            .group_by(Intern.encadreur_id)
        )
        result = await self.session.execute(query)
        return {encadreur_id: count for encadreur_id, count in result.all()}

    async def reconcile(self, encadreur_id: Optional[EncadreurId] = None) -> List[CounterCorrection]:
        """Recompte les stagiaires réellement affectés et corrige les compteurs divergents"""
        ensure_identifier(encadreur_id, EncadreurId, "encadreur_id", optional=True)
        query = select(Encadreur.id).order_by(Encadreur.id)
        if encadreur_id is not None:
            query = query.where(Encadreur.id == int(encadreur_id))
        ids = (await self.session.execute(query)).scalars().all()
        actual = await self.actual_counts()

        corrections: List[CounterCorrection] = []
        for raw_id in ids:
            encadreur = await self._lock(EncadreurId(raw_id))
            expected_count = actual.get(raw_id, 0)
            expected_available = availability(expected_count, encadreur.max_interns)
            if (encadreur.current_interns_count == expected_count
                    and encadreur.is_available == expected_available):
                continue
            correction = CounterCorrection(
                encadreur_id=EncadreurId(raw_id),
                stored_count=encadreur.current_interns_count,
                actual_count=expected_count,
                stored_available=encadreur.is_available,
                actual_available=expected_available,
            )
            logger.warning(
                f"Encadreur {raw_id} : compteur {correction.stored_count} -> {expected_count}, "
                f"disponible {correction.stored_available} -> {expected_available}"
            )
            self._store(encadreur, expected_count)
            corrections.append(correction)

        await self.session.flush()
        logger.info(f"Réconciliation terminée : {len(corrections)} compteur(s) corrigé(s)")
        return corrections
