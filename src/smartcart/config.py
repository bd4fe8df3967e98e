"""Configuration management for SmartCart."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class StorageConfig:
    """Local cache storage configuration."""

    cache_dir: Path
    backend: str = "json"


@dataclass
class SyncConfig:
    """Mutation queue replay configuration."""

    max_retries: int = 3
    temp_id_prefix: str = "temp_"


@dataclass
class PricingConfig:
    """Price suggestion windows and fuzzy matching."""

    high_confidence_days: int = 30
    medium_confidence_days: int = 90
    fuzzy_scan_limit: int = 20
    min_token_length: int = 3


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    storage: StorageConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def default_cache_dir() -> Path:
    return Path.home() / ".smartcart" / "cache"


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def storage(self) -> StorageConfig:
        return self._config.storage

    @property
    def sync(self) -> SyncConfig:
        return self._config.sync

    @property
    def pricing(self) -> PricingConfig:
        return self._config.pricing

    @property
    def logging(self) -> LoggingConfig:
        return self._config.logging

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "smartcart.toml",
            Path.home() / ".config" / "smartcart" / "config.toml",
            Path.home() / ".smartcart" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        return Path.home() / ".config" / "smartcart" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        storage = data.get("storage", {})
        sync = data.get("sync", {})
        pricing = data.get("pricing", {})

        return Config(
            storage=StorageConfig(
                cache_dir=Path(storage.get("cache_dir", str(default_cache_dir()))).expanduser(),
                backend=storage.get("backend", "json"),
            ),
            sync=SyncConfig(
                max_retries=sync.get("max_retries", 3),
                temp_id_prefix=sync.get("temp_id_prefix", "temp_"),
            ),
            pricing=PricingConfig(
                high_confidence_days=pricing.get("high_confidence_days", 30),
                medium_confidence_days=pricing.get("medium_confidence_days", 90),
                fuzzy_scan_limit=pricing.get("fuzzy_scan_limit", 20),
                min_token_length=pricing.get("min_token_length", 3),
            ),
            logging=LoggingConfig(level=data.get("logging", {}).get("level", "WARNING")),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(storage=StorageConfig(cache_dir=default_cache_dir()))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'sync.max_retries'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
