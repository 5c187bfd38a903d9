"""Configuration surface: settings schema, default table and loaders."""

from .loader import ConfigError, config_from_dict, default_config, load_config
from .models import DEFAULT_MODEL_SPECS, create_model_spec
from .settings import (
    ClassifierSettings,
    HealthSettings,
    ProviderSettings,
    RelayConfig,
    RetryPolicy,
    RoutingSettings,
)

__all__ = [
    "ClassifierSettings",
    "ConfigError",
    "DEFAULT_MODEL_SPECS",
    "HealthSettings",
    "ProviderSettings",
    "RelayConfig",
    "RetryPolicy",
    "RoutingSettings",
    "config_from_dict",
    "create_model_spec",
    "default_config",
    "load_config",
]
