"""
Package fetcher for catalogsync.

Downloads model payloads over HTTP(S) and opens zip archives. Payloads are
streamed to disk in chunks rather than buffered whole, since quantized
detection models still run to tens of megabytes.
"""

import asyncio
import logging
import lzma
import shutil
import zipfile
import zlib
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import aiohttp

from .errors import ArchiveError, FetchError

logger = logging.getLogger(__name__)

# Constants
CHUNK_SIZE = 256 * 1024  # 256KB read size
USER_AGENT = "catalogsync/1.0"


class PackageFetcher:
    """
    Retrieves bytes from remote locators.

    Usage:
        fetcher = PackageFetcher(timeout=600)
        try:
            await fetcher.download(url, scratch / "model.zip")
        finally:
            await fetcher.close()
    """

    def __init__(self, timeout: float = 600.0, chunk_size: int = CHUNK_SIZE):
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "PackageFetcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def download(self, uri: str, dest: Path) -> int:
        """
        Download a URI to a local file.

        Args:
            uri: http(s) or file URI
            dest: Destination path (overwritten)

        Returns:
            Number of bytes written

        Raises:
            FetchError: unreachable host, non-success status, or timeout
        """
        dest = Path(dest)
        parsed = urlparse(uri)

        if parsed.scheme == "file":
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None, self._copy_local, uri, url2pathname(parsed.path), dest
            )

        session = await self._get_session()
        written = 0
        try:
            async with session.get(uri, allow_redirects=True) as resp:
                if resp.status >= 400:
                    raise FetchError(uri, f"HTTP {resp.status}", status=resp.status)

                with open(dest, "wb") as f:
                    async for chunk in resp.content.iter_chunked(self.chunk_size):
                        f.write(chunk)
                        written += len(chunk)
        except asyncio.TimeoutError:
            raise FetchError(uri, f"timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise FetchError(uri, str(e) or type(e).__name__)
        except OSError as e:
            raise FetchError(uri, f"cannot write {dest.name}: {e.strerror or e}")

        logger.debug(f"Downloaded {written} bytes from {uri}")
        return written

    def _copy_local(self, uri: str, source: str, dest: Path) -> int:
        try:
            shutil.copyfile(source, dest)
        except OSError as e:
            raise FetchError(uri, e.strerror or str(e))
        return dest.stat().st_size


# ==================== Archives ====================

def open_archive(path: Path) -> zipfile.ZipFile:
    """Open a zip archive, raising ArchiveError if it is not readable."""
    try:
        return zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Cannot open archive {Path(path).name}: {e}")


def list_members(archive: zipfile.ZipFile) -> List[str]:
    """File members in archive order (directories skipped)."""
    return [info.filename for info in archive.infolist() if not info.is_dir()]


def extract(archive: zipfile.ZipFile, member: str, dest_dir: Path) -> Path:
    """
    Extract a single member into dest_dir.

    The member is written flat under its base name so entries with
    directory components cannot escape dest_dir.
    """
    dest = Path(dest_dir) / Path(member).name
    try:
        with archive.open(member) as src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out, CHUNK_SIZE)
    except (
        zipfile.BadZipFile,
        zlib.error,
        lzma.LZMAError,
        EOFError,
        NotImplementedError,  # unsupported compression method (e.g. deflate64)
        RuntimeError,  # encrypted member
        OSError,
    ) as e:
        raise ArchiveError(f"Cannot extract {member}: {e}")
    return dest
