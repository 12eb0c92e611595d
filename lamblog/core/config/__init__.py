from lamblog.core.config.manager import ConfigManager
from lamblog.core.config.models import ApiConfig, AppConfig, LoggingConfig, SessionConfig, StorageKeysConfig
from lamblog.core.config.paths import ConfigFsPaths

__all__ = [
    "ConfigManager",
    "ConfigFsPaths",
    "AppConfig",
    "SessionConfig",
    "ApiConfig",
    "LoggingConfig",
    "StorageKeysConfig",
]
