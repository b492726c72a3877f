"""Configuration management for the RCON panel application.

This module provides utilities for loading and validating configuration
from environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from dotenv import load_dotenv

from rconpanel.rconclient import SessionConfig

LOGGER = logging.getLogger(__name__)

_MILLISECONDS_PER_SECOND = 1000


def configure_logging(app_config: "AppConfig") -> None:
    """Configure logging based on the application configuration.

    :param app_config: The application configuration instance
    """
    if not app_config.logging_level:
        logging.basicConfig(level=logging.INFO, force=True)
        return

    numeric_level = getattr(logging, app_config.logging_level.upper(), None)
    if not isinstance(numeric_level, int):
        LOGGER.warning("Invalid log level: %s, using INFO", app_config.logging_level)
        numeric_level = logging.INFO
    logging.basicConfig(level=numeric_level, force=True)


@dataclass
class AppConfig:
    """Application configuration loaded from environment variables.

    All fields are initialized from environment variables using field
    creators. RCON timings are given in milliseconds.

    **Usage:**

    .. code-block:: python

        from dotenv import load_dotenv
        load_dotenv('.env')  # User's responsibility
        config = AppConfig()
    """

    DEFAULT_DATABASE_PATH: ClassVar[str] = "rconpanel.db"
    DEFAULT_COMMAND_TIMEOUT_MS: ClassVar[int] = 2000
    DEFAULT_CONNECT_TIMEOUT_MS: ClassVar[int] = 10000
    DEFAULT_HEARTBEAT_INTERVAL_MS: ClassVar[int] = 5000
    DEFAULT_HEARTBEAT_TIMEOUT_MS: ClassVar[int] = 5000
    DEFAULT_HEARTBEAT_COMMAND: ClassVar[str] = "status"

    # Database configuration
    db_path: str = field(
        default_factory=lambda: os.getenv("DB_PATH", AppConfig.DEFAULT_DATABASE_PATH),
    )

    # Logging configuration
    logging_level: str | None = field(
        default_factory=lambda: os.getenv("LOGGING_LEVEL"),
    )

    root_path: str = field(
        default_factory=lambda: os.getenv("ROOT_PATH", ""),
    )

    # Security configuration
    panel_api_key: str = field(
        default_factory=lambda: AppConfig._getenv_str_required("PANEL_API_KEY"),
    )

    # RCON configuration
    command_timeout_ms: int = field(
        default_factory=lambda: AppConfig._getenv_int_required(
            "RCON_COMMAND_TIMEOUT_MS",
            AppConfig.DEFAULT_COMMAND_TIMEOUT_MS,
        ),
    )
    connect_timeout_ms: int = field(
        default_factory=lambda: AppConfig._getenv_int_required(
            "RCON_CONNECT_TIMEOUT_MS",
            AppConfig.DEFAULT_CONNECT_TIMEOUT_MS,
        ),
    )
    heartbeat_interval_ms: int = field(
        default_factory=lambda: AppConfig._getenv_int_required(
            "RCON_HEARTBEAT_INTERVAL_MS",
            AppConfig.DEFAULT_HEARTBEAT_INTERVAL_MS,
        ),
    )
    heartbeat_timeout_ms: int = field(
        default_factory=lambda: AppConfig._getenv_int_required(
            "RCON_HEARTBEAT_TIMEOUT_MS",
            AppConfig.DEFAULT_HEARTBEAT_TIMEOUT_MS,
        ),
    )
    heartbeat_command: str = field(
        default_factory=lambda: os.getenv(
            "RCON_HEARTBEAT_COMMAND",
            AppConfig.DEFAULT_HEARTBEAT_COMMAND,
        ),
    )

    def __post_init__(self) -> None:
        """Post-initialization validation."""
        if not self.panel_api_key:
            msg = "PANEL_API_KEY must not be empty"
            raise ValueError(msg)
        for name in (
            "command_timeout_ms",
            "connect_timeout_ms",
            "heartbeat_interval_ms",
            "heartbeat_timeout_ms",
        ):
            if getattr(self, name) <= 0:
                msg = f"RCON_{name.upper()} must be a positive integer"
                raise ValueError(msg)

    @property
    def session_config(self) -> SessionConfig:
        """Create a SessionConfig instance from this configuration.

        :return: Configured SessionConfig instance, timings in seconds
        """
        return SessionConfig(
            connect_timeout=self.connect_timeout_ms / _MILLISECONDS_PER_SECOND,
            command_timeout=self.command_timeout_ms / _MILLISECONDS_PER_SECOND,
            heartbeat_interval=self.heartbeat_interval_ms / _MILLISECONDS_PER_SECOND,
            heartbeat_timeout=self.heartbeat_timeout_ms / _MILLISECONDS_PER_SECOND,
            heartbeat_command=self.heartbeat_command,
        )

    @staticmethod
    def _getenv_str_required(key: str) -> str:
        """Get a required string environment variable.

        :param key: Environment variable name
        :return: The environment variable value
        :raises ValueError: If variable is not set
        """
        value = os.getenv(key)
        if value is None:
            msg = f"Required environment variable {key} is not set"
            raise ValueError(msg)
        return value

    @staticmethod
    def _getenv_int_required(key: str, default: int) -> int:
        """Get an integer environment variable with a default.

        :param key: Environment variable name
        :param default: Default value if not set
        :return: The environment variable value as integer or default
        :raises ValueError: If value cannot be converted to int
        """
        value_str = os.getenv(key)

        if value_str is None or value_str == "":
            return default

        try:
            return int(value_str)
        except ValueError as e:
            msg = f"Environment variable {key} must be an integer, got: {value_str}"
            raise ValueError(msg) from e


def load_config_from_env(env_file: str | Path | None = None) -> AppConfig:
    """Load application configuration, reading an env file first if given.

    :param env_file: Optional path to a dotenv file
    :return: An AppConfig instance populated with environment variable values
    """
    if env_file:
        load_dotenv(dotenv_path=env_file)
    return AppConfig()
