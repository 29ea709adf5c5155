"""
Configuration management for modindex.

Configuration is resolved in three layers: built-in defaults, an optional YAML
file, then ``MODINDEX_*`` environment variables.
"""

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from modindex.core.exceptions import ConfigurationError
from modindex.core.interfaces import IndexerConfig
from modindex.core.store import StoreBackend, StoreConfig


logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MODINDEX_CONFIG"

STORE_BACKENDS = tuple(backend.value for backend in StoreBackend)


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Environment variable -> (config field, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "MODINDEX_STORE_BACKEND": ("store_backend", str),
    "MODINDEX_DATABASE_PATH": ("database_path", str),
    "MODINDEX_EXPIRATION": ("expiration", int),
    "MODINDEX_FETCH_INTERVAL": ("fetch_interval", int),
    "MODINDEX_CLEANUP_INTERVAL": ("cleanup_interval", int),
    "MODINDEX_CONCURRENT_REQUESTS": ("concurrent_requests", int),
    "MODINDEX_REQUEST_TIMEOUT": ("request_timeout", int),
    "MODINDEX_RETRY_COUNT": ("retry_count", int),
    "MODINDEX_ECOSYSTEMS": ("ecosystems", _split_list),
    "MODINDEX_GITHUB_TOKEN": ("github_token", str),
}


class ConfigurationManager:
    """
    Loads and validates the indexer configuration.
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Initialize the configuration manager.

        Args:
            config_path: YAML configuration file. If None, ``MODINDEX_CONFIG`` is
                consulted; without either, only defaults and environment apply.
            environ: Environment to read overrides from. Defaults to ``os.environ``.
        """
        self.environ = os.environ if environ is None else environ

        if config_path is None:
            config_path = self.environ.get(CONFIG_PATH_ENV)
        self.config_path = Path(config_path).expanduser() if config_path else None

        logger.debug(f"ConfigurationManager initialized with config_path: {self.config_path}")

    def load(self) -> IndexerConfig:
        """
        Resolve the configuration.

        Returns:
            The validated IndexerConfig.

        Raises:
            ConfigurationError: If the file cannot be read or a value is invalid.
        """
        values: Dict[str, Any] = {}

        if self.config_path is not None:
            values.update(self.load_file(self.config_path))

        values.update(self.load_environment())

        try:
            config = IndexerConfig(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        self.validate(config)
        return config

    def load_file(self, path: Path) -> Dict[str, Any]:
        """
        Load configuration values from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or has unknown keys.
        """
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing configuration YAML: {e}") from e
        except IOError as e:
            raise ConfigurationError(f"Error reading configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {path}")

        known = {f.name for f in fields(IndexerConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys in {path}: {', '.join(unknown)}")

        logger.debug(f"Loaded configuration from {path}")
        return data

    def load_environment(self) -> Dict[str, Any]:
        """
        Collect overrides from environment variables.

        ``GITHUB_TOKEN`` is honoured when ``MODINDEX_GITHUB_TOKEN`` is not set.
        """
        values: Dict[str, Any] = {}

        if self.environ.get("GITHUB_TOKEN"):
            values["github_token"] = self.environ["GITHUB_TOKEN"]

        for name, (field_name, convert) in ENV_OVERRIDES.items():
            raw = self.environ.get(name)
            if raw is None or raw == "":
                continue
            try:
                values[field_name] = convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e

        return values

    def validate(self, config: IndexerConfig) -> None:
        """
        Check value ranges and types.

        Raises:
            ConfigurationError: Listing every invalid value.
        """
        errors = []

        if config.store_backend not in STORE_BACKENDS:
            errors.append(f"store_backend must be one of {', '.join(STORE_BACKENDS)}")

        for name in ("expiration", "fetch_interval", "concurrent_requests", "request_timeout"):
            value = getattr(config, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(f"{name} must be a positive integer")

        for name in ("cleanup_interval", "retry_count"):
            value = getattr(config, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(f"{name} must be a non-negative integer")

        if not _is_str_list(config.ecosystems):
            errors.append("ecosystems must be a list of strings")

        if not _is_str_list(config.source_precedence):
            errors.append("source_precedence must be a list of strings")

        if not isinstance(config.tag_replacements, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in config.tag_replacements.items()
        ):
            errors.append("tag_replacements must map strings to strings")

        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> IndexerConfig:
    """Load the indexer configuration from file and environment."""
    return ConfigurationManager(config_path, environ).load()


def store_config(config: IndexerConfig) -> StoreConfig:
    """Build the package index configuration from the indexer configuration."""
    return StoreConfig(
        backend=StoreBackend(config.store_backend),
        database_path=config.database_path,
        default_ttl=config.expiration,
        cleanup_interval=config.cleanup_interval,
    )
