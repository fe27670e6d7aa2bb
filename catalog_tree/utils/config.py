"""
Configuration management for the catalog tree engine.

This module handles:
- Database location (per environment, or an explicit URL override)
- Environment-specific configuration (development vs. production)
- Log level for the command-line entry point
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
    ENV_VAR_DATABASE_URL,
    ENV_VAR_ENVIRONMENT,
    ENV_VAR_LOG_LEVEL,
)


class Config:
    """
    Application configuration manager.

    Resolves where the category database lives and how verbose logging
    should be. Values come from the environment at construction time.
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
        self._database_url_override = os.environ.get(ENV_VAR_DATABASE_URL)
        self._log_level = os.environ.get(ENV_VAR_LOG_LEVEL, "INFO").upper()

    def _get_project_data_dir(self) -> Path:
        """Project data/ directory, used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user data directory, used in production."""
        return Path.home() / ".catalog_tree"

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
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
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The CATALOG_TREE_DATABASE_URL override when set, otherwise a
            sqlite URL pointing at database_path
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def log_level(self) -> int:
        """Numeric logging level (falls back to INFO for unknown names)."""
        level = logging.getLevelName(self._log_level)
        return level if isinstance(level, int) else logging.INFO

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument; this prevents switching databases
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    CATALOG_TREE_ENV or defaults to production. Ignored if
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
            f"Returning existing singleton."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
