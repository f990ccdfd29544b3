import asyncio
from logging.config import fileConfig
import sys
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from dotenv import load_dotenv

# === Chargement env & config ===
BASE_DIR = Path(__file__).resolve().parent.parent  # racine du projet
sys.path.insert(0, str(BASE_DIR))
load_dotenv(BASE_DIR / ".env")

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# === Import Base & modèles (assure la découverte de toutes les tables) ===
from src.util.db.database import Base
from src.api import model  # noqa: F401

# === Target metadata ===
target_metadata = Base.metadata

# === URL de la base ===
from src.util.db.setting import settings
database_url = settings.DATABASE_URL

# Propager l'URL à Alembic (utile en offline)
config.set_main_option("sqlalchemy.url", database_url)

def run_migrations_offline() -> None:
    """Exécuter les migrations en mode hors-ligne."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()

def do_run_migrations(connection) -> None:
    """Configurer le contexte pour les migrations en ligne."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        # SQLite ne sait pas modifier une table en place
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()

async def run_migrations_online() -> None:
    """Exécuter les migrations en mode en-ligne (async)."""
    connectable = create_async_engine(database_url, poolclass=pool.NullPool, future=True)
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    except Exception as e:
        raise RuntimeError(f"Échec des migrations en ligne : {str(e)}") from e
    finally:
        await connectable.dispose()

if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
