"""
Content stores for catalogsync.

A content store accepts named blobs with overwrite semantics. Two backends:
Azure Blob Storage for real deployments and a local directory for dry runs.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from .config import StoreConfig
from .errors import ConfigError, StoreError

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
JSON_CONTENT = "application/json"


class ContentStore(Protocol):
    """
    Minimal content store interface.

    - put(name, data, content_type) replaces any existing blob of that name
    - list(prefix) -> blob names
    - download_path(name) -> store-relative path written into the catalog
    """

    async def put(self, name: str, data: bytes, content_type: str = OCTET_STREAM) -> None:
        ...

    async def list(self, prefix: str = "") -> List[str]:
        ...

    def download_path(self, name: str) -> str:
        ...

    def blob_url(self, name: str) -> str:
        ...

    async def close(self) -> None:
        ...


class AzureBlobStore:
    """
    Azure Blob Storage backend.

    Authenticates with a connection string, an account name and key, or an
    account URL carrying a SAS token, in that order of preference.
    """

    def __init__(
        self,
        container: str,
        account_name: Optional[str] = None,
        account_key: Optional[str] = None,
        connection_string: Optional[str] = None,
        account_url: Optional[str] = None,
        timeout: Optional[float] = None,
        create_container: bool = False,
    ):
        if connection_string:
            self.client = BlobServiceClient.from_connection_string(connection_string)
        elif account_name and account_key:
            self.client = BlobServiceClient(
                account_url=f"https://{account_name}.blob.core.windows.net",
                credential={"account_name": account_name, "account_key": account_key},
            )
        elif account_url:
            self.client = BlobServiceClient(account_url=account_url)
        else:
            raise ConfigError("No Azure storage credentials configured")

        self.container_name = container
        self.container = self.client.get_container_client(container)
        self.timeout = timeout
        self.create_container = create_container
        self._container_checked = not create_container

    async def _ensure_container(self) -> None:
        if self._container_checked:
            return
        try:
            await self.container.create_container()
            logger.info(f"Created container {self.container_name}")
        except ResourceExistsError:
            pass
        self._container_checked = True

    async def put(self, name: str, data: bytes, content_type: str = OCTET_STREAM) -> None:
        try:
            await self._ensure_container()
            blob = self.container.get_blob_client(name)
            await asyncio.wait_for(
                blob.upload_blob(
                    data,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=content_type),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise StoreError(name, f"upload timed out after {self.timeout}s")
        except AzureError as e:
            raise StoreError(name, getattr(e, "message", None) or str(e))
        logger.debug(f"Uploaded {name} ({len(data)} bytes) to {self.container_name}")

    async def list(self, prefix: str = "") -> List[str]:
        names = []
        try:
            async for blob in self.container.list_blobs(name_starts_with=prefix or None):
                names.append(blob.name)
        except AzureError as e:
            raise StoreError(prefix or self.container_name, str(e))
        return names

    def download_path(self, name: str) -> str:
        return f"/{self.container_name}/{name}"

    def blob_url(self, name: str) -> str:
        return self.container.get_blob_client(name).url

    async def close(self) -> None:
        await self.client.close()


class LocalDirectoryStore:
    """
    Filesystem backend writing blobs under <root>/<container>/.

    Used for dry runs and for staging a catalog before it is mirrored.
    """

    def __init__(self, root: Path, container: str):
        self.root = Path(root)
        self.container_name = container
        self.base = self.root / container

    def _path(self, name: str) -> Path:
        path = (self.base / name).resolve()
        if self.base.resolve() not in path.parents:
            raise StoreError(name, "name escapes the container")
        return path

    async def put(self, name: str, data: bytes, content_type: str = OCTET_STREAM) -> None:
        path = self._path(name)
        tmp = path.with_name(path.name + ".partial")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            raise StoreError(name, e.strerror or str(e))
        logger.debug(f"Wrote {name} ({len(data)} bytes, {content_type}) to {self.base}")

    async def list(self, prefix: str = "") -> List[str]:
        if not self.base.exists():
            return []
        names = [
            p.relative_to(self.base).as_posix()
            for p in self.base.rglob("*")
            if p.is_file() and not p.name.endswith(".partial")
        ]
        return sorted(n for n in names if n.startswith(prefix))

    def download_path(self, name: str) -> str:
        return f"/{self.container_name}/{name}"

    def blob_url(self, name: str) -> str:
        return (self.base / name).resolve().as_uri()

    async def close(self) -> None:
        pass


def create_store(config: StoreConfig, timeout: Optional[float] = None) -> ContentStore:
    """Create a content store from configuration."""
    backend = (config.backend or "azure").lower()

    if backend == "local":
        if not config.local_root:
            raise ConfigError("The local backend requires local_root")
        return LocalDirectoryStore(Path(config.local_root), config.container)

    if backend == "azure":
        return AzureBlobStore(
            container=config.container,
            account_name=config.account_name,
            account_key=config.account_key,
            connection_string=config.connection_string,
            account_url=config.account_url,
            timeout=timeout,
            create_container=config.create_container,
        )

    raise ConfigError(f"Unsupported store backend: {backend}")
