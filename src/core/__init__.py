"""
Core infrastructure layer for hostbus.

Purpose
-------
Provide a single, well-structured import surface for the core subsystems:

- Configuration management (Config, ConfigManager)
- Logging (structured logging, logger factory)
- Exceptions (HostbusException hierarchy)

Design Decisions
----------------
- This module is intentionally thin: no logic, no configuration, no I/O.
- Config is imported before logging; the logger reads `Config` at import.
- The event bus, loader and application context are imported from their own
  modules, not re-exported here.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.exceptions import (
    ErrorSeverity,
    HostbusException,
    InvalidArgumentError,
    ModuleLoadError,
)
from src.core.logging import get_logger, setup_logging

__all__ = [
    # Configuration
    "Config",
    "ConfigManager",
    # Logging
    "setup_logging",
    "get_logger",
    # Exceptions
    "HostbusException",
    "InvalidArgumentError",
    "ModuleLoadError",
    "ErrorSeverity",
]
