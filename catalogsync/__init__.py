"""
catalogsync - publish ONNX model binaries and a catalog to blob storage.

Downloads a fixed table of models from the Hugging Face hub, unpacks the
zipped ones, uploads each under a stable name, and writes catalog.json
describing what was uploaded.

Example:
    >>> from catalogsync import CatalogSynchronizer, DEFAULT_REGISTRY
    >>> report = await synchronizer.sync(DEFAULT_REGISTRY)
    >>> report.succeeded_count
    3
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .errors import ErrorKind, CatalogSyncError, ResolutionError, StoreError
from .manifest import CatalogManifest, ModelRecord
from .registry import ArtifactDescriptor, DEFAULT_REGISTRY, load_registry
from .resolver import ArtifactResolver, ResolvedArtifact
from .store import AzureBlobStore, LocalDirectoryStore, create_store
from .synchronizer import ArtifactOutcome, CatalogSynchronizer, SyncReport

__all__ = [
    "__version__",
    # Config
    "Config",
    "get_config",
    # Errors
    "ErrorKind",
    "CatalogSyncError",
    "ResolutionError",
    "StoreError",
    # Registry
    "ArtifactDescriptor",
    "DEFAULT_REGISTRY",
    "load_registry",
    # Resolver
    "ArtifactResolver",
    "ResolvedArtifact",
    # Stores
    "AzureBlobStore",
    "LocalDirectoryStore",
    "create_store",
    # Catalog
    "CatalogManifest",
    "ModelRecord",
    "ArtifactOutcome",
    "CatalogSynchronizer",
    "SyncReport",
]
