"""Configuration services."""

from .configuration_service import (
    ConfigurationService,
    SearchSettings,
    get_config_service,
    get_search_settings,
    init_config_service,
)

__all__ = [
    "ConfigurationService",
    "SearchSettings",
    "get_config_service",
    "get_search_settings",
    "init_config_service",
]
