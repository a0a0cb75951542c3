"""
Configuration management for the Production Batch Tracker application.

This module handles:
- Database path / URL configuration
- Environment-specific configuration (development vs. production)
- Logging level and batch numbering settings
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
    DEFAULT_BATCH_CODE_PREFIX,
)

ENV_VAR_ENVIRONMENT = "BATCH_TRACKER_ENV"
ENV_VAR_DATABASE_URL = "BATCH_TRACKER_DATABASE_URL"
ENV_VAR_DATA_DIR = "BATCH_TRACKER_DATA_DIR"
ENV_VAR_LOG_LEVEL = "BATCH_TRACKER_LOG_LEVEL"
ENV_VAR_BATCH_PREFIX = "BATCH_TRACKER_BATCH_PREFIX"


class Config:
    """
    Application configuration manager.

    Handles database location, environment settings and the few tunables the
    service layer reads (log level, batch code prefix).
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        if environment not in ("production", "development"):
            raise ValueError(
                f"Unknown environment '{environment}'. Use 'production' or 'development'."
            )
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        data_dir_override = os.environ.get(ENV_VAR_DATA_DIR)
        if data_dir_override:
            self._base_dir = Path(data_dir_override)
        elif environment == "development":
            # Use project data/ directory for development
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(ENV_VAR_DATABASE_URL)

        self._log_level = os.environ.get(ENV_VAR_LOG_LEVEL, "INFO").upper()
        self._batch_code_prefix = os.environ.get(ENV_VAR_BATCH_PREFIX, DEFAULT_BATCH_CODE_PREFIX)

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.batch_tracker
        """
        return Path.home() / ".batch_tracker"

    def ensure_directories(self):
        """Create the data directory if it doesn't exist."""
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
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The BATCH_TRACKER_DATABASE_URL override when set, otherwise a
            SQLite URL for the configured database file.
        """
        if self._database_url_override:
            return self._database_url_override
        # Use forward slashes for SQLite URL
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def uses_sqlite(self) -> bool:
        """True when the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def log_level(self) -> int:
        """Numeric logging level (defaults to INFO for unknown names)."""
        level = logging.getLevelName(self._log_level)
        return level if isinstance(level, int) else logging.INFO

    @property
    def batch_code_prefix(self) -> str:
        """Prefix used for sequential batch codes."""
        return self._batch_code_prefix

    def database_exists(self) -> bool:
        """
        Check if the database exists.

        Non-SQLite databases are assumed to exist; they are provisioned externally.

        Returns:
            True if database exists, False otherwise
        """
        if not self.uses_sqlite:
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument; this prevents switching databases
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BATCH_TRACKER_ENV or defaults to production. Ignored if
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
        logger = logging.getLogger(__name__)
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
