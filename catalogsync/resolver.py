"""
Artifact resolver for catalogsync.

Turns a registry descriptor into the model bytes that belong in the
content store: download the payload, and for zip payloads pull out the
model member and rename it to the canonical name.
"""

import asyncio
import hashlib
import logging
import tempfile
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Optional

from .errors import (
    ArchiveError,
    CorruptArchiveError,
    FetchError,
    FetchFailedError,
    MemberNotFoundError,
)
from .fetcher import PackageFetcher, extract, list_members, open_archive
from .registry import ArtifactDescriptor

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "catalogsync-"


@dataclass
class ResolvedArtifact:
    """Model bytes ready for upload."""
    descriptor: ArtifactDescriptor
    data: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @cached_property
    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()

    @property
    def name(self) -> str:
        return self.descriptor.canonical_name


class ArtifactResolver:
    """
    Resolves descriptors to artifact bytes.

    Each call works in its own scratch directory, keyed by the descriptor
    key, which is removed before resolve() returns on every path.

    Usage:
        resolver = ArtifactResolver(fetcher)
        artifact = await resolver.resolve(descriptor)
    """

    def __init__(
        self,
        fetcher: PackageFetcher,
        expected_extension: str = ".onnx",
        scratch_root: Optional[Path] = None,
    ):
        self.fetcher = fetcher
        self.expected_extension = expected_extension.lower()
        self.scratch_root = scratch_root

    async def resolve(self, descriptor: ArtifactDescriptor) -> ResolvedArtifact:
        """
        Resolve one descriptor.

        Raises:
            FetchFailedError: the payload could not be downloaded
            CorruptArchiveError: the payload is not a readable zip
            MemberNotFoundError: the zip holds no file with the expected extension
        """
        with tempfile.TemporaryDirectory(
            prefix=f"{SCRATCH_PREFIX}{descriptor.key}-",
            dir=self.scratch_root,
        ) as tmp:
            workdir = Path(tmp)
            download_path = workdir / descriptor.download_name

            logger.info(f"[{descriptor.key}] Downloading {descriptor.source_locator}")
            try:
                size = await self.fetcher.download(descriptor.source_locator, download_path)
            except FetchError as e:
                raise FetchFailedError(descriptor.key, str(e))
            logger.debug(f"[{descriptor.key}] Downloaded {size} bytes")

            loop = asyncio.get_running_loop()
            if not descriptor.is_archive:
                data = await loop.run_in_executor(None, download_path.read_bytes)
            else:
                data = await loop.run_in_executor(
                    None, self._extract_model, descriptor, download_path, workdir
                )

        artifact = ResolvedArtifact(descriptor=descriptor, data=data)
        logger.info(f"[{descriptor.key}] Resolved {artifact.name} ({artifact.size_bytes} bytes)")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"[{descriptor.key}] sha256 {artifact.sha256}")
        return artifact

    def _extract_model(
        self,
        descriptor: ArtifactDescriptor,
        archive_path: Path,
        workdir: Path,
    ) -> bytes:
        """Pull the model member out of a downloaded zip."""
        logger.info(f"[{descriptor.key}] Extracting ZIP archive")
        try:
            archive = open_archive(archive_path)
        except ArchiveError as e:
            raise CorruptArchiveError(descriptor.key, str(e))

        with archive:
            matches = [
                name for name in list_members(archive)
                if name.lower().endswith(self.expected_extension)
            ]
            if not matches:
                raise MemberNotFoundError(
                    descriptor.key,
                    f"No *{self.expected_extension} file in {archive_path.name}",
                )
            if len(matches) > 1:
                logger.warning(
                    f"[{descriptor.key}] {len(matches)} *{self.expected_extension} members "
                    f"in archive; using {matches[0]}, ignoring {', '.join(matches[1:])}"
                )

            extract_dir = workdir / "extracted"
            extract_dir.mkdir()
            try:
                extracted = extract(archive, matches[0], extract_dir)
            except ArchiveError as e:
                raise CorruptArchiveError(descriptor.key, str(e))

        return extracted.read_bytes()
