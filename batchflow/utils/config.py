"""
Configuration management for the batchflow application.

This module handles:
- Database path / URL configuration
- Environment-specific configuration (development vs. production)
- Tunables read from environment variables (timeouts, retry limits, log level)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_NOTIFY_MAX_ATTEMPTS,
)

logger = logging.getLogger(__name__)

ENV_VAR_ENVIRONMENT = "BATCHFLOW_ENV"
ENV_VAR_DATABASE_URL = "BATCHFLOW_DATABASE_URL"
ENV_VAR_DB_TIMEOUT = "BATCHFLOW_DB_TIMEOUT"
ENV_VAR_NOTIFY_MAX_ATTEMPTS = "BATCHFLOW_NOTIFY_MAX_ATTEMPTS"
ENV_VAR_LOG_LEVEL = "BATCHFLOW_LOG_LEVEL"


def _int_from_env(name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back with a warning."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}; using default {default}")
        return default
    if value < 1:
        logger.warning(f"Invalid {name}={raw!r} (must be >= 1); using default {default}")
        return default
    return value


class Config:
    """
    Application configuration manager.

    Handles all configuration settings including database location and the
    runtime tunables of the workflow services.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(ENV_VAR_DATABASE_URL) or None

        self._db_timeout = _int_from_env(ENV_VAR_DB_TIMEOUT, 30)
        self._notify_max_attempts = _int_from_env(
            ENV_VAR_NOTIFY_MAX_ATTEMPTS, DEFAULT_NOTIFY_MAX_ATTEMPTS
        )
        self._log_level = self._read_log_level()

    def _get_project_data_dir(self) -> Path:
        """Project-local data/ directory used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user application directory used in production."""
        return Path.home() / ".batchflow"

    def _read_log_level(self) -> str:
        raw = os.environ.get(ENV_VAR_LOG_LEVEL, "INFO").upper()
        if raw not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Invalid {ENV_VAR_LOG_LEVEL}={raw!r}; using INFO")
            return "INFO"
        return raw

    def ensure_directories(self) -> None:
        """Create the database directory if a file-based SQLite database is used."""
        if self._database_url_override is None:
            self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the default SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        BATCHFLOW_DATABASE_URL wins when set; otherwise a SQLite file in the
        environment's data directory.
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def db_timeout(self) -> int:
        """Seconds SQLite waits on a locked database."""
        return self._db_timeout

    @property
    def notify_max_attempts(self) -> int:
        """Delivery attempts before an outbox notification is marked failed."""
        return self._notify_max_attempts

    @property
    def log_level(self) -> str:
        """Root log level name."""
        return self._log_level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """True if the default SQLite database file exists."""
        return self._database_path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BATCHFLOW_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VAR_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """Get the configured database URL."""
    return get_config().database_url
