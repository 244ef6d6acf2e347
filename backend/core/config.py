import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

env_dir = Path(__file__).resolve().parent.parent

env_file = os.path.join(env_dir, ".env")

DEV_ENCRYPTION_KEY = "dev-key-not-for-production-use-change-this-immediately"

# Environments allowed to run on DEV_ENCRYPTION_KEY
INSECURE_KEY_ENVIRONMENTS = ("development", "test")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=env_file,
        env_ignore_empty=True,
        extra="ignore",
        env_file_encoding="utf-8",
    )

    # General settings
    app_name: str = "K-Fin Data Service"
    app_version: str = "1.0.0"
    app_description: str = "Integration credentials and data retrieval for organizations"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Credential encryption
    ENCRYPTION_KEY: Optional[str] = None

    # Retrieval
    DEMO_MODE: Optional[bool] = None
    RETRIEVAL_CONCURRENCY: int = 4
    RETRIEVAL_TIMEOUT_SECONDS: float = 30.0
    SYNTHETIC_SOURCES: Tuple[str, ...] = ("google", "acuity", "plaid")

    # Vendors
    ACUITY_API_BASE_URL: str = "https://acuityscheduling.com/api/v1"
    PLAID_CLIENT_ID: Optional[str] = None
    PLAID_SECRET: Optional[str] = None
    PLAID_ENVIRONMENT: str = "sandbox"

    @model_validator(mode="after")
    def check_encryption_key(self) -> "Settings":
        if self.ENCRYPTION_KEY:
            return self
        if self.ENVIRONMENT not in INSECURE_KEY_ENVIRONMENTS:
            raise ConfigurationError(f"ENCRYPTION_KEY must be set when ENVIRONMENT={self.ENVIRONMENT}")
        logger.warning("ENCRYPTION_KEY not set. Using default key for development only.")
        self.ENCRYPTION_KEY = DEV_ENCRYPTION_KEY
        return self

    @property
    def demo_mode_enabled(self) -> bool:
        """Synthetic data is only served in demo mode"""
        if self.DEMO_MODE is not None:
            return self.DEMO_MODE
        return self.ENVIRONMENT == "development"


settings = Settings()  # type: ignore
