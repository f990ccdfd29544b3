import asyncio
import logging

from src.api.service import EncadreurService
from src.util.db.database import close_db, init_db, session_scope
from src.util.db.seed import seed_reference_data
from src.util.db.setting import settings

logger = logging.getLogger(__name__)


async def bootstrap():
    """Crée le schéma, insère les données initiales et répare les compteurs d'encadrés"""
    logger.info("Démarrage de l'initialisation...")
    settings.log_config()
    try:
        await init_db()

        async with session_scope() as session:
            await seed_reference_data(session)

        async with session_scope() as session:
            corrections = await EncadreurService(session).reconcile_counters()
        if corrections:
            logger.warning(f"{len(corrections)} compteur(s) d'encadrés corrigé(s) au démarrage")
        logger.info("Initialisation terminée.")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(bootstrap())
