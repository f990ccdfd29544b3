import logging
from contextlib import asynccontextmanager
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import AsyncAdaptedQueuePool
from src.util.db.setting import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False):
    """Crée le moteur async ; SQLite reçoit le pragma des clés étrangères"""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=echo, future=True)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(
        database_url,
        echo=echo,
        future=True,
        poolclass=AsyncAdaptedQueuePool,
        pool_pre_ping=True,
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite n'applique ON DELETE RESTRICT / CASCADE qu'avec ce pragma
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async_engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()

async def get_async_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Erreur DB : {str(e)}", exc_info=True)
            raise


@asynccontextmanager
async def session_scope(session_factory=None):
    """Unité de travail hors du cycle requête : commit en sortie, rollback sur erreur"""
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine=None):
    # Les modèles doivent être importés pour peupler Base.metadata
    from src.api import model  # noqa: F401

    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Base de données initialisée")

async def close_db():
    await async_engine.dispose()
    logger.info("Connexion à la base de données fermée")
