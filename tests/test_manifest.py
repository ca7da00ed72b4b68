"""
Tests for the catalog manifest document.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from catalogsync.config import CatalogConfig
from catalogsync.manifest import CatalogManifest, ModelRecord
from catalogsync.registry import ArtifactDescriptor
from catalogsync.resolver import ResolvedArtifact


def artifact(key="cpu", name="a.onnx", data=b"12345"):
    descriptor = ArtifactDescriptor(
        key=key,
        source_locator="https://example.com/x",
        canonical_name=name,
        capability_tag="CPUExecutionProvider",
    )
    return ResolvedArtifact(descriptor=descriptor, data=data)


class TestModelRecord:
    """Tests for ModelRecord."""

    def test_from_artifact(self):
        """Test a record carries the descriptor and size."""
        record = ModelRecord.from_artifact(artifact(), "/models/a.onnx", CatalogConfig())

        assert record.id == "yolox-cpu"
        assert record.name == "YoloX"
        assert record.version == "1.0.0"
        assert record.license == "MIT"
        assert record.publisher == "YourOrganization"
        assert record.execution_providers[0].name == "CPUExecutionProvider"
        assert record.files[0].name == "a.onnx"
        assert record.files[0].url == "/models/a.onnx"
        assert record.files[0].size == 5

    def test_wire_format(self):
        """Test records serialize with camelCase keys."""
        record = ModelRecord.from_artifact(artifact(), "/models/a.onnx", CatalogConfig(publisher="Contoso"))
        data = record.model_dump(by_alias=True)

        assert data == {
            "id": "yolox-cpu",
            "name": "YoloX",
            "version": "1.0.0",
            "publisher": "Contoso",
            "executionProviders": [{"name": "CPUExecutionProvider"}],
            "license": "MIT",
            "files": [{"name": "a.onnx", "url": "/models/a.onnx", "size": 5}],
        }


class TestCatalogManifest:
    """Tests for CatalogManifest."""

    def test_new(self):
        manifest = CatalogManifest.new(CatalogConfig(schema_version="2.0", version="3.1.0"))
        assert manifest.schema_version == "2.0"
        assert manifest.version == "3.1.0"
        assert manifest.models == []
        assert not manifest.finalized

    def test_preserves_insertion_order(self):
        """Test entries keep the order they were added in."""
        manifest = CatalogManifest.new(CatalogConfig())
        for key in ("vitis", "cpu", "qnn"):
            manifest.add(ModelRecord.from_artifact(
                artifact(key=key, name=f"{key}.onnx"), f"/models/{key}.onnx", CatalogConfig()
            ))

        assert manifest.ids() == ["yolox-vitis", "yolox-cpu", "yolox-qnn"]

    def test_finalize(self):
        """Test finalize stamps publisher and a UTC timestamp."""
        manifest = CatalogManifest.new(CatalogConfig())
        manifest.finalize("Contoso", now=datetime(2026, 3, 1, 12, 30, 5, tzinfo=timezone.utc))

        assert manifest.publisher == "Contoso"
        assert manifest.generated_at == "2026-03-01T12:30:05Z"

    def test_finalize_converts_to_utc(self):
        manifest = CatalogManifest.new(CatalogConfig())
        tz = timezone(timedelta(hours=2))
        manifest.finalize("p", now=datetime(2026, 3, 1, 14, 0, 0, tzinfo=tz))
        assert manifest.generated_at == "2026-03-01T12:00:00Z"

    def test_finalize_once(self):
        """Test a finalized manifest cannot be changed."""
        manifest = CatalogManifest.new(CatalogConfig())
        manifest.finalize("p")

        with pytest.raises(RuntimeError):
            manifest.finalize("p")
        with pytest.raises(RuntimeError):
            manifest.add(ModelRecord.from_artifact(artifact(), "/models/a.onnx", CatalogConfig()))

    def test_document_shape(self):
        """Test the serialized document matches the catalog format."""
        manifest = CatalogManifest.new(CatalogConfig())
        manifest.add(ModelRecord.from_artifact(artifact(), "/models/a.onnx", CatalogConfig()))
        manifest.finalize("Contoso")

        doc = json.loads(manifest.to_json())

        assert list(doc.keys()) == ["schemaVersion", "generatedAt", "publisher", "version", "models"]
        assert doc["publisher"] == "Contoso"
        assert doc["generatedAt"].endswith("Z")
        assert doc["models"][0]["executionProviders"] == [{"name": "CPUExecutionProvider"}]

    def test_parse_published(self):
        """Test a published catalog can be read back."""
        manifest = CatalogManifest.new(CatalogConfig())
        manifest.add(ModelRecord.from_artifact(artifact(), "/models/a.onnx", CatalogConfig()))
        manifest.finalize("Contoso")

        parsed = CatalogManifest.from_json(manifest.to_json())

        assert parsed.ids() == ["yolox-cpu"]
        assert parsed.models[0].files[0].size == 5
        assert parsed.generated_at == manifest.generated_at
