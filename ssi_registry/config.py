"""
config.py - Centralized settings for the identity registry
"""
import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistrySettings(BaseSettings):
    # Storage: SQLite file when set, in-memory otherwise
    DB_PATH: Optional[Path] = None

    # Caller authentication for the HTTP surface
    REQUIRE_SIGNATURES: bool = True
    SIGNING_PREFIX: str = "ssi-registry"
    # Seconds a signed request stays acceptable around its X-Issued-At
    SIGNATURE_WINDOW: int = 300

    LOG_LEVEL: str = "INFO"

    # uvicorn
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = SettingsConfigDict(env_prefix="REGISTRY_", env_file=".env", extra="ignore")


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


settings = RegistrySettings()
