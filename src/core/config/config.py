"""
Process settings for hostbus, read from the environment.

Purpose
-------
Holds the handful of values fixed at process start: which environment the
host runs in, how logs are written and where the YAML tunables live.
Everything the bus and the loader tune at runtime lives in ConfigManager.

Architecture Notes
------------------
- Class-level attributes, no instantiation; `Config.load()` runs on import
  and can be called again after the environment changes.
- Never imports the logging subsystem (the logger reads this class), so
  parse warnings go through the stdlib root logger.
- Every lookup is recorded so `get_load_report()` can tell which values
  came from the environment.

Environment Variables
---------------------
- ENVIRONMENT: development | testing | staging | production (default development)
- DEBUG: debug flag (default false)
- LOG_LEVEL: DEBUG | INFO | WARNING | ERROR | CRITICAL (default INFO)
- LOG_JSON: force JSON console output (default: production only)
- LOG_COLORS: colored console output on a tty (default true)
- LOG_TO_FILE: also write a rotating JSON log file (default false)
- LOGS_DIR: directory for that file (default <root>/logs)
- HOSTBUS_CONFIG_DIR: directory scanned for YAML tunables (default <root>/config)
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

_TRUE_VALUES = frozenset({"true", "yes", "1", "on"})
_FALSE_VALUES = frozenset({"false", "no", "0", "off"})
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Environment(Enum):
    """Deployment environment of the host process."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse an environment name, falling back to development.

        Example
        -------
        >>> Environment.from_string("Production") is Environment.PRODUCTION
        True
        >>> Environment.from_string("moon") is Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            logging.warning("Unknown ENVIRONMENT '%s', using development", value)
            return cls.DEVELOPMENT


@dataclass
class EnvLoadReport:
    """Where each setting came from during the last `Config.load()`."""

    from_environment: Dict[str, bool] = field(default_factory=dict)
    validation_errors: Dict[str, str] = field(default_factory=dict)

    def record(self, key: str, present: bool) -> None:
        self.from_environment[key] = present

    def reject(self, key: str, error: str) -> None:
        logging.warning(error)
        self.validation_errors[key] = error

    def summary(self) -> Dict[str, Any]:
        return {
            "settings": len(self.from_environment),
            "from_environment": sorted(k for k, v in self.from_environment.items() if v),
            "defaulted": sorted(k for k, v in self.from_environment.items() if not v),
            "validation_errors": dict(self.validation_errors),
        }


class Config:
    """
    Static hostbus settings.

    >>> Config.LOG_LEVEL
    'INFO'
    >>> Config.is_production()
    False
    """

    ENVIRONMENT: str = Environment.DEVELOPMENT.value
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True
    LOG_TO_FILE: bool = False

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    CONFIG_DIR: Path = PROJECT_ROOT / "config"

    _report: EnvLoadReport = EnvLoadReport()

    # =========================================================================
    # Parsing
    # =========================================================================

    @classmethod
    def _env_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """Parse true/false, yes/no, 1/0 or on/off; anything else keeps `default`."""
        raw = os.getenv(key)
        cls._report.record(key, raw is not None)
        if raw is None:
            return default

        normalized = raw.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False

        cls._report.reject(key, f"{key}='{raw}' is not a boolean, using {default}")
        return default

    @classmethod
    def _env_str(cls, key: str, default: str) -> str:
        raw = os.getenv(key)
        cls._report.record(key, raw is not None)
        return default if raw is None else raw

    @classmethod
    def _env_path(cls, key: str, default: Path) -> Path:
        raw = os.getenv(key)
        cls._report.record(key, bool(raw))
        return Path(raw).expanduser() if raw else default

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """(Re)read every setting from the environment."""
        cls._report = EnvLoadReport()

        cls.ENVIRONMENT = Environment.from_string(cls._env_str("ENVIRONMENT", "development")).value
        cls.DEBUG = bool(cls._env_bool("DEBUG", False))
        cls.LOG_JSON = cls._env_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._env_bool("LOG_COLORS", True))
        cls.LOG_TO_FILE = bool(cls._env_bool("LOG_TO_FILE", False))
        cls.LOGS_DIR = cls._env_path("LOGS_DIR", cls.PROJECT_ROOT / "logs")
        cls.CONFIG_DIR = cls._env_path("HOSTBUS_CONFIG_DIR", cls.PROJECT_ROOT / "config")

        level = cls._env_str("LOG_LEVEL", "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            cls._report.reject("LOG_LEVEL", f"Invalid LOG_LEVEL '{level}', using INFO")
            level = "INFO"
        cls.LOG_LEVEL = level

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == Environment.DEVELOPMENT.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def get_load_report(cls) -> EnvLoadReport:
        return cls._report

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Settings safe to log at startup."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "log_json": cls.LOG_JSON,
            "log_to_file": cls.LOG_TO_FILE,
            "config_dir": str(cls.CONFIG_DIR),
        }


Config.load()
