"""Configuration management for the field service coordinator."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    BrandGroupConfig,
    DispatchConfig,
    DispatchMode,
    EmailConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    SMSConfig,
    SupplierEntry,
    SuppliersConfig,
)

__all__ = [
    "load_config",
    "build_app_config",
    "load_environment_config",
    "AppConfig",
    "EmailConfig",
    "SMSConfig",
    "SuppliersConfig",
    "SupplierEntry",
    "BrandGroupConfig",
    "DispatchConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "DispatchMode",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
