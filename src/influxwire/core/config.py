"""
Core Configuration Module
=========================

Centralized configuration management using Pydantic Settings.

Only the HTTP client and the logging setup read these settings; the codecs,
decoders and query builders are pure transformations and take no
configuration.

Environment Variables:
- INFLUXDB_URL: InfluxDB base URL
- INFLUXDB_TOKEN: Authentication token (InfluxDB 2.x)
- INFLUXDB_USERNAME / INFLUXDB_PASSWORD: Basic auth credentials (InfluxDB 1.x)
- INFLUXDB_ORG: Organization name (Flux queries and v2 writes)
- INFLUXDB_DATABASE: Default database (InfluxQL queries and v1 writes)
- INFLUXDB_BUCKET: Default bucket (v2 writes)
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
import logging
import os

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def get_secret(secret_name: str, env_var_name: Optional[str] = None) -> Optional[str]:
    """
    Read a secret from Docker Secrets or environment variable.

    Order of precedence:
    1. Docker Secret file at /run/secrets/{secret_name}
    2. Environment variable {ENV_VAR_NAME}_FILE pointing to a file
    3. Environment variable {ENV_VAR_NAME} directly

    Args:
        secret_name: Name of the secret file (without path)
        env_var_name: Environment variable name (if different from secret_name)

    Returns:
        Secret value or None if not found
    """
    if env_var_name is None:
        env_var_name = secret_name.upper()

    secret_path = Path(f"/run/secrets/{secret_name}")
    if secret_path.exists():
        try:
            return secret_path.read_text().strip()
        except OSError as e:
            logger.warning(f"⚠️  Failed to read secret from {secret_path}: {e}")

    file_env_var = f"{env_var_name}_FILE"
    if file_env_var in os.environ:
        file_path = Path(os.environ[file_env_var])
        if file_path.exists():
            try:
                return file_path.read_text().strip()
            except OSError as e:
                logger.warning(f"⚠️  Failed to read secret from {file_path}: {e}")

    return os.environ.get(env_var_name)


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=False
    )

    # =================================================================
    # APPLICATION SETTINGS
    # =================================================================
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # =================================================================
    # INFLUXDB SETTINGS
    # =================================================================
    INFLUXDB_URL: str = "http://localhost:8086"
    INFLUXDB_TOKEN: str = ""  # Will be loaded from secret
    INFLUXDB_USERNAME: Optional[str] = None
    INFLUXDB_PASSWORD: Optional[str] = None  # Will be loaded from secret
    INFLUXDB_ORG: Optional[str] = None
    INFLUXDB_DATABASE: Optional[str] = None
    INFLUXDB_BUCKET: Optional[str] = None

    # Connection settings
    INFLUXDB_TIMEOUT: float = 10.0  # seconds
    INFLUXDB_VERIFY_SSL: bool = True
    INFLUXDB_MAX_RETRIES: int = 3

    def model_post_init(self, __context) -> None:
        """Load secrets from Docker Secrets after model initialization."""
        influxdb_token = get_secret("influxdb_token", "INFLUXDB_TOKEN")
        if influxdb_token:
            self.INFLUXDB_TOKEN = influxdb_token

        influxdb_password = get_secret("influxdb_password", "INFLUXDB_PASSWORD")
        if influxdb_password:
            self.INFLUXDB_PASSWORD = influxdb_password

    def __repr__(self):
        """Safe representation without exposing secrets."""
        return (
            f"Settings("
            f"env={self.ENVIRONMENT}, "
            f"influxdb_url={self.INFLUXDB_URL}, "
            f"org={self.INFLUXDB_ORG}, "
            f"database={self.INFLUXDB_DATABASE}, "
            f"bucket={self.INFLUXDB_BUCKET})"
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get global settings instance (cached).

    Settings are read lazily so that importing the package never touches
    the environment or the filesystem.
    """
    return Settings()
