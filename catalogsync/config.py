"""
Configuration management for catalogsync.

Handles:
- Content store selection and credentials
- Catalog metadata (publisher, versions, license)
- Runtime settings (timeouts, concurrency, exit policy)
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

from .errors import ConfigError

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".catalogsync"

DEFAULT_CONTAINER = "models"
DEFAULT_PUBLISHER = "YourOrganization"
DEFAULT_TIMEOUT = 600.0  # Model downloads run to hundreds of MB

STORE_BACKENDS = ("azure", "local")


@dataclass
class StoreConfig:
    """Configuration for the content store."""
    backend: str = "azure"  # azure, local
    account_name: Optional[str] = None
    account_key: Optional[str] = None
    connection_string: Optional[str] = None
    account_url: Optional[str] = None  # e.g. https://<account>.blob.core.windows.net/?<sas>
    container: str = DEFAULT_CONTAINER
    local_root: Optional[str] = None
    create_container: bool = False

    def to_dict(self) -> dict:
        return {
            "backend": self.backend,
            "account_name": self.account_name,
            "account_key": self.account_key,
            "connection_string": self.connection_string,
            "account_url": self.account_url,
            "container": self.container,
            "local_root": self.local_root,
            "create_container": self.create_container,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoreConfig":
        # Filter to only known fields to handle config evolution
        known_fields = {
            "backend", "account_name", "account_key", "connection_string",
            "account_url", "container", "local_root", "create_container",
        }
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


@dataclass
class CatalogConfig:
    """Metadata written into catalog.json."""
    publisher: str = DEFAULT_PUBLISHER
    schema_version: str = "1.0"
    version: str = "1.0.0"
    model_name: str = "YoloX"
    model_version: str = "1.0.0"
    license: str = "MIT"
    id_prefix: str = "yolox-"
    catalog_name: str = "catalog.json"
    expected_extension: str = ".onnx"

    def to_dict(self) -> dict:
        return {
            "publisher": self.publisher,
            "schema_version": self.schema_version,
            "version": self.version,
            "model_name": self.model_name,
            "model_version": self.model_version,
            "license": self.license,
            "id_prefix": self.id_prefix,
            "catalog_name": self.catalog_name,
            "expected_extension": self.expected_extension,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CatalogConfig":
        known_fields = set(cls().to_dict().keys())
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


@dataclass
class Config:
    """
    Main catalogsync configuration.

    Stored at ~/.catalogsync/config.json
    """
    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    # Components
    store: StoreConfig = field(default_factory=StoreConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)

    # Runtime
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = 1
    fail_on_partial: bool = False
    registry_file: Optional[str] = None

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def apply_env(self) -> None:
        """Fill empty store credentials from the environment."""
        if not self.store.connection_string:
            self.store.connection_string = os.environ.get("AZURE_STORAGE_CONNECTION_STRING")
        if not self.store.account_key:
            self.store.account_key = os.environ.get("AZURE_STORAGE_KEY")
        if not self.store.account_name:
            self.store.account_name = os.environ.get("AZURE_STORAGE_ACCOUNT")

    def validate(self) -> None:
        """Check settings that would otherwise fail mid-run."""
        if self.store.backend not in STORE_BACKENDS:
            raise ConfigError(f"Unknown store backend: {self.store.backend}")
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")
        if not self.store.container:
            raise ConfigError("A container name is required")
        if self.store.backend == "local" and not self.store.local_root:
            raise ConfigError("The local backend requires local_root")
        if self.store.backend == "azure" and not (
            self.store.connection_string
            or self.store.account_url
            or (self.store.account_name and self.store.account_key)
        ):
            raise ConfigError(
                "Azure storage needs a connection string, an account URL, "
                "or an account name and key"
            )

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        data = {
            "store": self.store.to_dict(),
            "catalog": self.catalog.to_dict(),
            "timeout": self.timeout,
            "concurrency": self.concurrency,
            "fail_on_partial": self.fail_on_partial,
            "registry_file": self.registry_file,
        }

        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, 'r') as f:
            data = json.load(f)

        config = cls(
            data_dir=data_dir,
            timeout=data.get("timeout", DEFAULT_TIMEOUT),
            concurrency=data.get("concurrency", 1),
            fail_on_partial=data.get("fail_on_partial", False),
            registry_file=data.get("registry_file"),
        )

        if "store" in data:
            config.store = StoreConfig.from_dict(data["store"])

        if "catalog" in data:
            config.catalog = CatalogConfig.from_dict(data["catalog"])

        return config

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
