from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
import logging

# --- Configuration de base ---
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
ENV_FILE = BASE_DIR / ".env"
load_dotenv(ENV_FILE)

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("config")


class Settings(BaseSettings):
    # --- Base de données ---
    DATABASE_URL: str
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Règles métier ---
    DEFAULT_MAX_INTERNS: int = 5
    # Refuser aussi les écritures brutes au-delà de la capacité (pas seulement l'affectation métier)
    ENFORCE_ENCADREUR_CAPACITY: bool = False

    # --- Données initiales ---
    DEFAULT_COUNTRY: str = "Morocco"
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # --- Config Pydantic ---
    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Validations ---
    @field_validator("DATABASE_URL", mode="before")
    def check_database_url(cls, v):
        if not v or not isinstance(v, str):
            raise ValueError("DATABASE_URL doit être défini et non vide.")
        return v

    @field_validator("DEFAULT_MAX_INTERNS")
    def check_max_interns(cls, v):
        if v < 0:
            raise ValueError("DEFAULT_MAX_INTERNS doit être positif ou nul.")
        return v

    @field_validator("LOG_LEVEL")
    def check_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL invalide : {v}")
        return level

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    # --- Logging sécurisé ---
    def log_config(self):
        logger.info("✅ Configuration chargée avec succès.")
        for key, value in self.model_dump().items():
            if any(secret in key.upper() for secret in ("PASSWORD", "SECRET")):
                value = "*****"
            logger.info(f"{key}: {value}")


# --- Initialisation ---
settings = Settings()
logging.getLogger().setLevel(settings.LOG_LEVEL)

if __name__ == "__main__":
    settings.log_config()
