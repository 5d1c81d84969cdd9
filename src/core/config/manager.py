"""
ConfigManager: YAML-backed tunables for hostbus.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values such as the
  listener-leak threshold or the names of the synthetic lifecycle events.
- Back configuration with built-in defaults deep-merged with every YAML file
  found under the config directory.
- Allow in-memory overrides for tests and embedding hosts.

Key Design Decisions
--------------------
- Built-in defaults are the last resort; YAML files override them; explicit
  `override()` calls win over both.
- YAML loading is best effort: a missing directory or an unreadable file is
  logged and skipped unless `strict=True` is requested.
- Class-level state (no instantiation required), so components can receive
  either the class or an instance and call `get()` on it.

Dependencies
------------
- PyYAML (`yaml.safe_load`) for the YAML files.
- `src.core.config.config.Config` for the default config directory.
- `src.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.config.errors import ConfigInitializationError, ConfigValidationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


BUILTIN_DEFAULTS: Dict[str, Any] = {
    "core": {
        "event": {
            "max_listeners": 1000,
            "wildcard": "*",
        },
        "lifecycle": {
            "ready_event": "host.ready",
            "shutdown_event": "host.shutdown",
        },
        "loader": {
            "default_phase": "runtime",
            "modules": {"bootstrap": [], "runtime": []},
        },
        "host": {
            "sources": [],
        },
    },
}


class ConfigManager:
    """
    Dot-notation configuration access over defaults, YAML and overrides.

    Examples
    --------
    >>> ConfigManager.initialize()
    >>> ConfigManager.get("core.event.max_listeners")
    1000
    >>> ConfigManager.override("core.event.max_listeners", 50)
    >>> ConfigManager.get("core.event.max_listeners")
    50
    """

    _defaults: Dict[str, Any] = copy.deepcopy(BUILTIN_DEFAULTS)
    _overrides: Dict[str, Any] = {}
    _loaded_files: List[str] = []
    _initialized: bool = False

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path, strict: bool) -> None:
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                if strict:
                    raise ConfigInitializationError(
                        f"Failed to load YAML config '{relative}'",
                        details={"file": relative, "error": str(exc)},
                    ) from exc
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                cls._loaded_files.append(relative)
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": len(cls._loaded_files),
                "config_dir": str(config_dir),
            },
        )

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None, *, strict: bool = False) -> None:
        """
        Load built-in defaults and YAML tunables.

        Parameters
        ----------
        config_dir:
            Directory scanned recursively for `*.yaml` / `*.yml`. Defaults to
            `Config.CONFIG_DIR`.
        strict:
            Raise `ConfigInitializationError` on an unreadable file instead
            of logging and skipping it.
        """
        cls._defaults = copy.deepcopy(BUILTIN_DEFAULTS)
        cls._loaded_files = []
        cls._load_yaml_configs(Path(config_dir or Config.CONFIG_DIR), strict)
        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop YAML values and overrides; back to built-in defaults."""
        cls._defaults = copy.deepcopy(BUILTIN_DEFAULTS)
        cls._overrides = {}
        cls._loaded_files = []
        cls._initialized = False

    # =========================================================================
    # READ API
    # =========================================================================

    @classmethod
    def _lookup(cls, tree: Dict[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Overrides win over YAML, YAML wins over built-in defaults. Returns
        `default` when no layer defines the key.

        Examples
        --------
        >>> ConfigManager.get("core.lifecycle.ready_event")
        'host.ready'
        >>> ConfigManager.get("missing.key", 5)
        5
        """
        if key in cls._overrides:
            return cls._overrides[key]

        if not cls._initialized:
            logger.debug(
                "ConfigManager accessed before explicit initialization; "
                "using built-in defaults",
                extra={"config_key": key},
            )

        value = cls._lookup(cls._defaults, key)
        return default if value is None else value

    @classmethod
    def get_int(
        cls,
        key: str,
        default: int,
        *,
        min_val: Optional[int] = None,
    ) -> int:
        """
        Read an integer tunable, raising `ConfigValidationError` if it is not one.
        """
        value = cls.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigValidationError(
                f"Config key '{key}' must be an integer",
                details={"config_key": key, "value_type": type(value).__name__},
            )
        if min_val is not None and value < min_val:
            raise ConfigValidationError(
                f"Config key '{key}' must be >= {min_val}",
                details={"config_key": key, "value": value},
            )
        return value

    @classmethod
    def override(cls, key: str, value: Any) -> None:
        """Set an in-memory override for `key` (highest precedence)."""
        cls._overrides[key] = value
        logger.debug("Config override applied", extra={"config_key": key})

    @classmethod
    def clear_overrides(cls) -> None:
        cls._overrides = {}

    @classmethod
    def loaded_files(cls) -> List[str]:
        return list(cls._loaded_files)

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized


__all__ = ["ConfigManager", "BUILTIN_DEFAULTS"]
