"""
Tests for the model registry.
"""

import dataclasses

import pytest

from catalogsync.errors import RegistryError
from catalogsync.registry import (
    ArtifactDescriptor,
    DEFAULT_REGISTRY,
    dump_registry,
    load_registry,
    validate_registry,
)


def descriptor(key="cpu", url="https://example.com/a.zip", name="a.onnx", archive=True):
    return ArtifactDescriptor(
        key=key,
        source_locator=url,
        canonical_name=name,
        capability_tag="CPUExecutionProvider",
        is_archive=archive,
    )


class TestDefaultRegistry:
    """Tests for the built-in model table."""

    def test_models(self):
        """Test the three YoloX variants are present in order."""
        assert [d.key for d in DEFAULT_REGISTRY] == ["qnn-npu", "vitis-ai", "cpu"]

    def test_providers(self):
        """Test each model targets its execution provider."""
        providers = {d.key: d.capability_tag for d in DEFAULT_REGISTRY}
        assert providers == {
            "qnn-npu": "QNNExecutionProvider",
            "vitis-ai": "VitisAIExecutionProvider",
            "cpu": "CPUExecutionProvider",
        }

    def test_archives(self):
        """Test only the Qualcomm models ship as zips."""
        archives = {d.key for d in DEFAULT_REGISTRY if d.is_archive}
        assert archives == {"qnn-npu", "cpu"}

    def test_valid(self):
        """Test the built-in table passes validation."""
        assert validate_registry(DEFAULT_REGISTRY) == DEFAULT_REGISTRY

    def test_immutable(self):
        """Test descriptors cannot be modified."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_REGISTRY[0].key = "other"


class TestDescriptor:
    """Tests for ArtifactDescriptor."""

    def test_download_name_archive(self):
        """Test zipped payloads are downloaded as <stem>.zip."""
        assert descriptor(name="Yolo-X_float.onnx").download_name == "Yolo-X_float.zip"

    def test_download_name_plain(self):
        """Test plain payloads are downloaded under the canonical name."""
        assert descriptor(archive=False).download_name == "a.onnx"

    def test_serialization(self):
        """Test descriptor serialization."""
        d = descriptor()
        assert ArtifactDescriptor.from_dict(d.to_dict()) == d

    def test_archive_flag(self):
        """Test the boolean archive field overrides file_type."""
        data = descriptor(archive=False).to_dict()
        data["archive"] = True
        assert ArtifactDescriptor.from_dict(data).is_archive

    def test_unknown_file_type(self):
        """Test unknown file types are rejected."""
        data = descriptor().to_dict()
        data["file_type"] = "tar"
        with pytest.raises(RegistryError):
            ArtifactDescriptor.from_dict(data)

    def test_missing_field(self):
        """Test a missing field is reported."""
        data = descriptor().to_dict()
        del data["url"]
        with pytest.raises(RegistryError, match="url"):
            ArtifactDescriptor.from_dict(data)


class TestValidation:
    """Tests for registry validation."""

    def test_duplicate_key(self):
        """Test duplicate keys are rejected."""
        with pytest.raises(RegistryError, match="Duplicate registry key"):
            validate_registry([descriptor(), descriptor(name="b.onnx")])

    def test_duplicate_canonical_name(self):
        """Test duplicate canonical names are rejected."""
        with pytest.raises(RegistryError, match="Duplicate canonical name"):
            validate_registry([descriptor(), descriptor(key="gpu")])

    def test_bad_scheme(self):
        """Test non-http locators are rejected."""
        with pytest.raises(RegistryError):
            validate_registry([descriptor(url="ftp://example.com/a.zip")])

    def test_relative_locator(self):
        """Test relative paths are rejected."""
        with pytest.raises(RegistryError):
            validate_registry([descriptor(url="models/a.zip")])

    def test_file_uri(self):
        """Test file URIs are accepted."""
        registry = validate_registry([descriptor(url="file:///srv/mirror/a.zip")])
        assert len(registry) == 1


class TestLoadRegistry:
    """Tests for YAML registry files."""

    def test_round_trip_default(self, tmp_path):
        """Test the built-in table survives dump and load."""
        path = tmp_path / "models.yaml"
        path.write_text(dump_registry(DEFAULT_REGISTRY))
        assert load_registry(path) == DEFAULT_REGISTRY

    def test_load(self, tmp_path):
        """Test loading a hand-written file."""
        path = tmp_path / "models.yaml"
        path.write_text(
            "models:\n"
            "  - key: cpu\n"
            "    url: https://example.com/a.onnx.zip\n"
            "    filename: a.onnx\n"
            "    execution_provider: CPUExecutionProvider\n"
            "    file_type: zip\n"
            "  - key: vitis\n"
            "    url: https://example.com/b.onnx\n"
            "    filename: b.onnx\n"
            "    execution_provider: VitisAIExecutionProvider\n"
        )
        registry = load_registry(path)

        assert [d.key for d in registry] == ["cpu", "vitis"]
        assert registry[0].is_archive
        assert not registry[1].is_archive

    def test_missing_file(self, tmp_path):
        """Test a missing file raises RegistryError."""
        with pytest.raises(RegistryError, match="not found"):
            load_registry(tmp_path / "nope.yaml")

    def test_no_models_list(self, tmp_path):
        """Test a file without a models list is rejected."""
        path = tmp_path / "models.yaml"
        path.write_text("version: 1\n")
        with pytest.raises(RegistryError, match="models"):
            load_registry(path)

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML is reported."""
        path = tmp_path / "models.yaml"
        path.write_text("models: [\n")
        with pytest.raises(RegistryError, match="Invalid"):
            load_registry(path)
