"""
Shared fixtures for catalogsync tests.
"""

import asyncio
import io
import json
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
from rich.console import Console

from catalogsync.config import Config
from catalogsync.errors import FetchError, StoreError
from catalogsync.store import OCTET_STREAM


def build_zip(members: Dict[str, bytes]) -> bytes:
    """Build an in-memory zip with members in the given order."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


def with_compression_method(data: bytes, method: int) -> bytes:
    """Rewrite the compression method of a single-member zip's headers."""
    raw = bytearray(data)
    method_bytes = method.to_bytes(2, "little")
    local = raw.index(b"PK\x03\x04")
    raw[local + 8:local + 10] = method_bytes
    central = raw.index(b"PK\x01\x02")
    raw[central + 10:central + 12] = method_bytes
    return bytes(raw)


class FakeFetcher:
    """Serves canned payloads by URI; an Exception value is raised instead."""

    def __init__(self, payloads: Dict[str, Union[bytes, Exception]], delays: Optional[Dict[str, float]] = None):
        self.payloads = payloads
        self.delays = delays or {}
        self.calls: List[str] = []
        self.scratch_dirs: List[Path] = []

    async def download(self, uri: str, dest: Path) -> int:
        self.calls.append(uri)
        self.scratch_dirs.append(Path(dest).parent)
        if uri in self.delays:
            await asyncio.sleep(self.delays[uri])
        payload = self.payloads.get(uri)
        if payload is None:
            raise FetchError(uri, "HTTP 404", status=404)
        if isinstance(payload, Exception):
            raise payload
        Path(dest).write_bytes(payload)
        return len(payload)

    async def close(self) -> None:
        pass


class MemoryStore:
    """In-memory content store; names in fail_names reject uploads."""

    def __init__(self, container: str = "models", fail_names=()):
        self.container_name = container
        self.blobs: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.fail_names = set(fail_names)
        self.put_calls: List[str] = []
        self.closed = False

    async def put(self, name: str, data: bytes, content_type: str = OCTET_STREAM) -> None:
        self.put_calls.append(name)
        if name in self.fail_names:
            raise StoreError(name, "rejected by test store")
        self.blobs[name] = bytes(data)
        self.content_types[name] = content_type

    async def list(self, prefix: str = "") -> List[str]:
        return sorted(n for n in self.blobs if n.startswith(prefix))

    def download_path(self, name: str) -> str:
        return f"/{self.container_name}/{name}"

    def blob_url(self, name: str) -> str:
        return f"memory://{self.container_name}/{name}"

    async def close(self) -> None:
        self.closed = True

    def catalog(self, name: str = "catalog.json") -> dict:
        return json.loads(self.blobs[name])


@pytest.fixture
def zip_bytes():
    return build_zip


@pytest.fixture
def deflate64_zip():
    """A zip holding one .onnx member flagged as deflate64 (method 9)."""
    def build(name: str = "a.onnx", data: bytes = b"A" * 100) -> bytes:
        return with_compression_method(build_zip({name: data}), 9)
    return build


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=tmp_path / "config")


@pytest.fixture
def wide_console(monkeypatch):
    """Keep rich tables from wrapping cell text in CLI output."""
    import catalogsync.cli as cli

    monkeypatch.setattr(cli, "console", Console(width=200))


@pytest.fixture(autouse=True)
def no_azure_env(monkeypatch):
    for var in ("AZURE_STORAGE_KEY", "AZURE_STORAGE_CONNECTION_STRING", "AZURE_STORAGE_ACCOUNT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def make_store():
    return MemoryStore
