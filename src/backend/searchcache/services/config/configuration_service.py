"""
Configuration Service
Centralized configuration management with caching and environment overrides
"""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# Environment variable -> SearchSettings field
ENV_OVERRIDES = {
    "SEARCH_DEBOUNCE_MS": "debounce_ms",
    "SEARCH_MIN_QUERY_LENGTH": "min_query_length",
    "SEARCH_CACHE_TTL": "cache_ttl_seconds",
    "SEARCH_DEFAULT_PAGE_SIZE": "default_page_size",
    "SEARCH_MAX_PAGE_SIZE": "max_page_size",
    "SEARCH_INDEX_TIMEOUT_SECONDS": "index_timeout_seconds",
    "SEARCH_CACHE_BACKEND": "cache_backend",
    "CACHE_PREFIX": "cache_prefix",
    "MEILISEARCH_URL": "meilisearch_url",
    "MEILISEARCH_API_KEY": "meilisearch_api_key",
    "MEILISEARCH_INDEX": "meilisearch_index",
    "SEARCH_ADMIN_API_KEYS": "admin_api_keys",
}


class SearchSettings(BaseModel):
    """Validated search engine settings (file defaults + environment overrides)."""

    debounce_ms: int = Field(default=300, ge=0)
    min_query_length: int = Field(default=2, ge=0)
    cache_ttl_seconds: float = Field(default=300, gt=0)
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    max_query_length: int = Field(default=100, ge=1)
    index_timeout_seconds: float = Field(default=5.0, gt=0)
    cache_backend: str = "memory"
    cache_prefix: str = "tc"
    sweep_interval_seconds: float = Field(default=0, ge=0)
    meilisearch_url: Optional[str] = None
    meilisearch_api_key: Optional[str] = None
    meilisearch_index: str = "content"
    admin_api_keys: List[str] = Field(default_factory=list)

    @field_validator("cache_backend")
    @classmethod
    def _lower_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("admin_api_keys", mode="before")
    @classmethod
    def _split_keys(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [k.strip() for k in value.split(",") if k.strip()]
        return value

    @field_validator("meilisearch_url", "meilisearch_api_key", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ConfigurationService:
    """
    Centralized service for loading and caching application configurations

    Loads configurations from JSON files in the config directory with:
    - LRU caching for performance
    - Environment variable overrides for search settings
    - Hot-reload capability
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize ConfigurationService

        Args:
            config_dir: Path to configuration directory. If None, uses default searchcache/config
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent.parent.parent / "config"
        else:
            self.config_dir = Path(config_dir)

        logger.info(f"ConfigurationService initialized with config_dir: {self.config_dir}")

    @lru_cache(maxsize=32)
    def load_config(self, config_name: str) -> Dict[str, Any]:
        """
        Load configuration from JSON file with caching

        Args:
            config_name: Name of config file (without .json extension)

        Returns:
            Dict containing configuration data

        Raises:
            FileNotFoundError: If config file not found
            json.JSONDecodeError: If config file is invalid JSON
        """
        config_path = self.config_dir / f"{config_name}.json"

        if not config_path.exists():
            logger.error(f"Config file not found: {config_name}.json")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {config_name}.json: {e}")
            raise

        logger.info(f"Loaded config: {config_name} (version: {config.get('version', 'N/A')})")
        return config

    def reload_config(self, config_name: str) -> Dict[str, Any]:
        """
        Force reload of configuration (clears cache)

        Args:
            config_name: Name of config file to reload

        Returns:
            Freshly loaded configuration
        """
        self.load_config.cache_clear()
        logger.info(f"Cache cleared, reloading config: {config_name}")
        return self.load_config(config_name)

    def get_search_config(self) -> Dict[str, Any]:
        """Get search configuration file contents"""
        return self.load_config("search_config")

    def get_search_settings(self, environ: Optional[Dict[str, str]] = None) -> SearchSettings:
        """
        Build SearchSettings from search_config.json with environment overrides

        Args:
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated SearchSettings

        Raises:
            pydantic.ValidationError: If a value is out of range or not parseable
        """
        environ = os.environ if environ is None else environ
        values = dict(self.get_search_config().get("search", {}))

        for env_name, field_name in ENV_OVERRIDES.items():
            if env_name in environ:
                values[field_name] = environ[env_name]

        settings = SearchSettings(**values)
        if settings.default_page_size > settings.max_page_size:
            logger.warning(
                f"default_page_size {settings.default_page_size} exceeds max_page_size "
                f"{settings.max_page_size}, clamping"
            )
            settings = settings.model_copy(update={"default_page_size": settings.max_page_size})
        return settings

    def get_sample_catalog(self) -> List[Dict[str, Any]]:
        """Get documents served by the in-memory index adapter"""
        return self.load_config("sample_catalog").get("documents", [])


# Global singleton instance
_config_service: Optional[ConfigurationService] = None


def get_config_service() -> ConfigurationService:
    """
    Get global ConfigurationService singleton instance

    Returns:
        ConfigurationService instance
    """
    global _config_service
    if _config_service is None:
        _config_service = ConfigurationService()
    return _config_service


def init_config_service(config_dir: Optional[str] = None) -> ConfigurationService:
    """
    Initialize global ConfigurationService with custom config directory

    Args:
        config_dir: Path to configuration directory

    Returns:
        ConfigurationService instance
    """
    global _config_service
    _config_service = ConfigurationService(config_dir)
    logger.info("Global ConfigurationService initialized")
    return _config_service


def get_search_settings() -> SearchSettings:
    """Search settings from the global ConfigurationService"""
    return get_config_service().get_search_settings()
