"""
Catalog synchronizer for catalogsync.

Drives the resolver over the registry, uploads each resolved model to the
content store, and publishes catalog.json listing what made it.

A failed model never stops the batch: its outcome is recorded and the
next descriptor is processed. Only a failed catalog publish makes the run
as a whole unsuccessful.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .config import Config
from .errors import ErrorKind, ResolutionError, StoreError
from .manifest import CatalogManifest, ModelRecord
from .registry import ArtifactDescriptor
from .resolver import ArtifactResolver
from .store import JSON_CONTENT, OCTET_STREAM, ContentStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PUBLISH_FAILED = 1
EXIT_PARTIAL = 2


@dataclass
class ArtifactOutcome:
    """Result of one descriptor's resolve + upload attempt."""
    key: str
    canonical_name: str
    capability_tag: str
    success: bool
    size_bytes: int = 0
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def ok(cls, descriptor: ArtifactDescriptor, size_bytes: int, **kwargs) -> "ArtifactOutcome":
        return cls(
            key=descriptor.key,
            canonical_name=descriptor.canonical_name,
            capability_tag=descriptor.capability_tag,
            success=True,
            size_bytes=size_bytes,
            **kwargs,
        )

    @classmethod
    def fail(
        cls,
        descriptor: ArtifactDescriptor,
        kind: ErrorKind,
        message: str,
        **kwargs
    ) -> "ArtifactOutcome":
        return cls(
            key=descriptor.key,
            canonical_name=descriptor.canonical_name,
            capability_tag=descriptor.capability_tag,
            success=False,
            error_kind=kind,
            message=message,
            **kwargs,
        )

    @property
    def duration(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "canonical_name": self.canonical_name,
            "capability_tag": self.capability_tag,
            "success": self.success,
            "size_bytes": self.size_bytes,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "duration": self.duration,
        }


@dataclass
class SyncReport:
    """Summary of a sync run."""
    outcomes: List[ArtifactOutcome] = field(default_factory=list)
    manifest: Optional[CatalogManifest] = None
    catalog_name: str = "catalog.json"
    manifest_published: bool = False
    manifest_error: Optional[str] = None
    manifest_error_kind: Optional[ErrorKind] = None

    @property
    def succeeded(self) -> List[ArtifactOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ArtifactOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def complete(self) -> bool:
        """True when the catalog was published and no model failed."""
        return self.manifest_published and not self.failed

    def exit_code(self, fail_on_partial: bool = False) -> int:
        """
        Process exit status for this run.

        A failed catalog publish is always fatal; failed models only count
        when fail_on_partial is set.
        """
        if not self.manifest_published:
            return EXIT_PUBLISH_FAILED
        if fail_on_partial and self.failed:
            return EXIT_PARTIAL
        return EXIT_OK

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded_count,
            "failed": [
                {"key": o.key, "error_kind": o.error_kind.value, "message": o.message}
                for o in self.failed
            ],
            "catalog_name": self.catalog_name,
            "manifest_published": self.manifest_published,
            "manifest_error": self.manifest_error,
            "manifest_error_kind": (
                self.manifest_error_kind.value if self.manifest_error_kind else None
            ),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class CatalogSynchronizer:
    """
    Synchronizes the registry's models and catalog into a content store.

    Usage:
        synchronizer = CatalogSynchronizer(store, resolver, config)
        report = await synchronizer.sync(DEFAULT_REGISTRY)
        sys.exit(report.exit_code(config.fail_on_partial))

    With config.concurrency > 1, up to that many models transfer at once
    and catalog entries appear in completion order. Entry insertion is
    serialized through a lock.
    """

    def __init__(self, store: ContentStore, resolver: ArtifactResolver, config: Config):
        self.store = store
        self.resolver = resolver
        self.config = config

        # Events
        self.on_artifact_start: Optional[Callable[[ArtifactDescriptor], None]] = None
        self.on_artifact_complete: Optional[Callable[[ArtifactOutcome], None]] = None

    async def sync(self, registry: Iterable[ArtifactDescriptor]) -> SyncReport:
        """
        Run one pass over the registry and publish the catalog.

        Each descriptor gets exactly one resolve + upload attempt.
        """
        descriptors = tuple(registry)
        catalog = self.config.catalog
        manifest = CatalogManifest.new(catalog)
        lock = asyncio.Lock()

        logger.info(f"Syncing {len(descriptors)} models (concurrency={self.config.concurrency})")

        if self.config.concurrency <= 1:
            outcomes = []
            for descriptor in descriptors:
                outcomes.append(await self._sync_one(descriptor, manifest, lock))
        else:
            semaphore = asyncio.Semaphore(self.config.concurrency)

            async def bounded(descriptor: ArtifactDescriptor) -> ArtifactOutcome:
                async with semaphore:
                    return await self._sync_one(descriptor, manifest, lock)

            outcomes = list(await asyncio.gather(*(bounded(d) for d in descriptors)))

        report = SyncReport(
            outcomes=outcomes,
            manifest=manifest,
            catalog_name=catalog.catalog_name,
        )
        await self._publish(manifest, report)
        return report

    async def _sync_one(
        self,
        descriptor: ArtifactDescriptor,
        manifest: CatalogManifest,
        lock: asyncio.Lock,
    ) -> ArtifactOutcome:
        """Resolve, upload and record one model."""
        started_at = datetime.now()
        if self.on_artifact_start:
            self.on_artifact_start(descriptor)

        try:
            artifact = await self.resolver.resolve(descriptor)
        except ResolutionError as e:
            logger.error(f"[{descriptor.key}] {e.kind.value}: {e}")
            outcome = ArtifactOutcome.fail(
                descriptor, e.kind, str(e),
                started_at=started_at, completed_at=datetime.now(),
            )
            return self._complete(outcome)
        except Exception as e:
            # Anything else the resolver lets through still fails only this model
            kind = ErrorKind.CORRUPT_ARCHIVE if descriptor.is_archive else ErrorKind.FETCH_FAILED
            logger.exception(f"[{descriptor.key}] Unexpected error during resolve: {e}")
            outcome = ArtifactOutcome.fail(
                descriptor, kind, str(e) or type(e).__name__,
                started_at=started_at, completed_at=datetime.now(),
            )
            return self._complete(outcome)

        try:
            await self.store.put(descriptor.canonical_name, artifact.data, OCTET_STREAM)
        except StoreError as e:
            logger.error(f"[{descriptor.key}] Upload failed: {e}")
            outcome = ArtifactOutcome.fail(
                descriptor, ErrorKind.STORE_PUT_FAILED, str(e),
                started_at=started_at, completed_at=datetime.now(),
            )
            return self._complete(outcome)
        except Exception as e:
            logger.exception(f"[{descriptor.key}] Unexpected error during upload: {e}")
            outcome = ArtifactOutcome.fail(
                descriptor, ErrorKind.STORE_PUT_FAILED, str(e) or type(e).__name__,
                started_at=started_at, completed_at=datetime.now(),
            )
            return self._complete(outcome)

        record = ModelRecord.from_artifact(
            artifact,
            self.store.download_path(descriptor.canonical_name),
            self.config.catalog,
        )
        async with lock:
            manifest.add(record)

        logger.info(f"[{descriptor.key}] Uploaded {descriptor.canonical_name}")
        outcome = ArtifactOutcome.ok(
            descriptor, artifact.size_bytes,
            started_at=started_at, completed_at=datetime.now(),
        )
        return self._complete(outcome)

    def _complete(self, outcome: ArtifactOutcome) -> ArtifactOutcome:
        if self.on_artifact_complete:
            self.on_artifact_complete(outcome)
        return outcome

    async def _publish(self, manifest: CatalogManifest, report: SyncReport) -> None:
        """Overwrite the catalog with this run's manifest."""
        manifest.finalize(self.config.catalog.publisher)
        name = self.config.catalog.catalog_name

        try:
            await self.store.put(name, manifest.to_json(), JSON_CONTENT)
        except StoreError as e:
            logger.error(f"{ErrorKind.MANIFEST_PUBLISH_FAILED.value}: {e}")
            report.manifest_published = False
            report.manifest_error = str(e)
            report.manifest_error_kind = ErrorKind.MANIFEST_PUBLISH_FAILED
            return

        report.manifest_published = True
        logger.info(f"Published {name} with {len(manifest.models)} models")
