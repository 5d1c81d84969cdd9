"""
Configuration subsystem for hostbus.

Purpose
-------
Provides static (environment-based) and dynamic (YAML-backed) configuration.

- **config.py**: static settings from environment variables (.env support)
- **manager.py**: dot-notation tunables from built-in defaults + YAML files
- **errors.py**: configuration exception hierarchy

Usage Examples
--------------
```python
from src.core.config import Config, ConfigManager

if Config.is_production():
    logger.info("Running in production mode")

ConfigManager.initialize()
threshold = ConfigManager.get("core.event.max_listeners", 1000)
```

Dependencies
------------
- Config: python-dotenv, pathlib, enum
- ConfigManager: PyYAML
"""

from src.core.config.config import Config, Environment
from src.core.config.manager import BUILTIN_DEFAULTS, ConfigManager
from src.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "BUILTIN_DEFAULTS",
    "ConfigError",
    "ConfigInitializationError",
    "ConfigValidationError",
]
