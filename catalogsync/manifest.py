"""
Catalog manifest (catalog.json) document models.

Field names and nesting are a compatibility contract with the clients that
read the catalog, so every field carries its camelCase wire alias.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import CatalogConfig
from .resolver import ResolvedArtifact

logger = logging.getLogger(__name__)


class _CatalogModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ExecutionProvider(_CatalogModel):
    name: str


class ModelFile(_CatalogModel):
    name: str
    url: str
    size: int = Field(ge=0)


class ModelRecord(_CatalogModel):
    """One entry in the catalog's models list."""
    id: str
    name: str
    version: str
    publisher: str
    execution_providers: List[ExecutionProvider] = Field(alias="executionProviders")
    license: str
    files: List[ModelFile]

    @classmethod
    def from_artifact(
        cls,
        artifact: ResolvedArtifact,
        download_path: str,
        catalog: CatalogConfig,
    ) -> "ModelRecord":
        descriptor = artifact.descriptor
        return cls(
            id=f"{catalog.id_prefix}{descriptor.key}",
            name=catalog.model_name,
            version=catalog.model_version,
            publisher=catalog.publisher,
            execution_providers=[ExecutionProvider(name=descriptor.capability_tag)],
            license=catalog.license,
            files=[
                ModelFile(
                    name=descriptor.canonical_name,
                    url=download_path,
                    size=artifact.size_bytes,
                )
            ],
        )


class CatalogManifest(_CatalogModel):
    """
    The aggregate catalog published once per run.

    Built incrementally with add(), stamped once with finalize(), then
    serialized. Published as a full replacement of any prior catalog.
    """
    schema_version: str = Field(default="1.0", alias="schemaVersion")
    generated_at: Optional[str] = Field(default=None, alias="generatedAt")
    publisher: str = ""
    version: str = "1.0.0"
    models: List[ModelRecord] = Field(default_factory=list)

    @property
    def finalized(self) -> bool:
        return self.generated_at is not None

    def add(self, record: ModelRecord) -> None:
        if self.finalized:
            raise RuntimeError("Catalog manifest is already finalized")
        self.models.append(record)

    def ids(self) -> List[str]:
        return [m.id for m in self.models]

    def finalize(self, publisher: str, now: Optional[datetime] = None) -> None:
        """Stamp publisher and generation time (ISO-8601 UTC)."""
        if self.finalized:
            raise RuntimeError("Catalog manifest is already finalized")
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        self.publisher = publisher
        self.generated_at = now.strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "CatalogManifest":
        return cls.model_validate_json(data)

    @classmethod
    def new(cls, catalog: CatalogConfig) -> "CatalogManifest":
        return cls(
            schema_version=catalog.schema_version,
            publisher=catalog.publisher,
            version=catalog.version,
        )
