"""
Configuration error hierarchy for hostbus.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (a tunable has the wrong type or range)
└── ConfigInitializationError (YAML tunables could not be loaded in strict mode)
"""

from src.core.exceptions import HostbusException


class ConfigError(HostbusException):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     ConfigManager.initialize(strict=True)
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """


class ConfigValidationError(ConfigError):
    """
    Raised when a configuration value fails validation.

    Example
    -------
    >>> ConfigManager.get_int("core.event.max_listeners", 1000, min_val=1)
    """


class ConfigInitializationError(ConfigError):
    """
    Raised when ConfigManager cannot load its YAML files in strict mode.

    Outside strict mode the same failures are logged and the built-in
    defaults are used instead.
    """


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
