"""
Model registry for catalogsync.

The registry is a fixed, ordered table of artifact descriptors: where each
model binary lives on the hub, what it must be called in the content store,
and which execution provider it targets. It is loaded once and never
mutated during a run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple
from urllib.parse import urlparse
import yaml

from .errors import RegistryError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "file")

# File type column of the model table: "zip" payloads hold the model inside
ARCHIVE_TYPES = {"zip": True, "onnx": False}


@dataclass(frozen=True)
class ArtifactDescriptor:
    """
    Static description of one model artifact.

    Attributes:
        key: Short identifier, unique within the registry
        source_locator: URI the bytes are retrieved from
        canonical_name: Blob name the resolved bytes are stored under
        capability_tag: Execution provider the model targets (pass-through)
        is_archive: Whether the payload is a zip holding the model file
    """
    key: str
    source_locator: str
    canonical_name: str
    capability_tag: str
    is_archive: bool = False

    @property
    def download_name(self) -> str:
        """Scratch file name for the raw download."""
        if self.is_archive:
            return f"{Path(self.canonical_name).stem}.zip"
        return self.canonical_name

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "url": self.source_locator,
            "filename": self.canonical_name,
            "execution_provider": self.capability_tag,
            "file_type": "zip" if self.is_archive else "onnx",
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactDescriptor":
        try:
            key = data["key"]
            url = data["url"]
            filename = data["filename"]
            provider = data["execution_provider"]
        except KeyError as e:
            raise RegistryError(f"Registry entry missing field {e.args[0]!r}: {data}")

        if "archive" in data:
            is_archive = bool(data["archive"])
        else:
            file_type = str(data.get("file_type", "onnx")).lower()
            if file_type not in ARCHIVE_TYPES:
                raise RegistryError(f"Unknown file_type {file_type!r}", key=key)
            is_archive = ARCHIVE_TYPES[file_type]

        return cls(
            key=str(key),
            source_locator=str(url),
            canonical_name=str(filename),
            capability_tag=str(provider),
            is_archive=is_archive,
        )


DEFAULT_REGISTRY: Tuple[ArtifactDescriptor, ...] = (
    ArtifactDescriptor(
        key="qnn-npu",
        source_locator=(
            "https://huggingface.co/qualcomm/Yolo-X/resolve/"
            "f7d92bb30d876f4c7dd485b4d30776583b8fbae4/Yolo-X_w8a8.onnx.zip?download=true"
        ),
        canonical_name="Yolo-X_w8a8.onnx",
        capability_tag="QNNExecutionProvider",
        is_archive=True,
    ),
    ArtifactDescriptor(
        key="vitis-ai",
        source_locator=(
            "https://huggingface.co/amd/yolox-s/resolve/"
            "7c14fb63e32a65d92d173b2119790442f6b2bfc7/yolox-s-int8.onnx?download=true"
        ),
        canonical_name="yolox-s-int8.onnx",
        capability_tag="VitisAIExecutionProvider",
        is_archive=False,
    ),
    ArtifactDescriptor(
        key="cpu",
        source_locator=(
            "https://huggingface.co/qualcomm/Yolo-X/resolve/"
            "f7d92bb30d876f4c7dd485b4d30776583b8fbae4/Yolo-X_float.onnx.zip?download=true"
        ),
        canonical_name="Yolo-X_float.onnx",
        capability_tag="CPUExecutionProvider",
        is_archive=True,
    ),
)


def validate_registry(descriptors: Iterable[ArtifactDescriptor]) -> Tuple[ArtifactDescriptor, ...]:
    """
    Validate a registry and freeze it into a tuple.

    Raises:
        RegistryError: on duplicate keys or canonical names, or a source
            locator that is not an absolute http(s) or file URI
    """
    result = tuple(descriptors)
    keys = set()
    names = set()

    for descriptor in result:
        if not descriptor.key:
            raise RegistryError("Registry entry has an empty key")
        if descriptor.key in keys:
            raise RegistryError(f"Duplicate registry key: {descriptor.key}", key=descriptor.key)
        if descriptor.canonical_name in names:
            raise RegistryError(
                f"Duplicate canonical name: {descriptor.canonical_name}",
                key=descriptor.key,
            )

        parsed = urlparse(descriptor.source_locator)
        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise RegistryError(
                f"Unsupported source locator: {descriptor.source_locator}",
                key=descriptor.key,
            )
        if parsed.scheme != "file" and not parsed.netloc:
            raise RegistryError(
                f"Source locator has no host: {descriptor.source_locator}",
                key=descriptor.key,
            )

        keys.add(descriptor.key)
        names.add(descriptor.canonical_name)

    return result


def load_registry(path: Path) -> Tuple[ArtifactDescriptor, ...]:
    """
    Load a registry from a YAML file.

    The file holds a top-level ``models`` list; each item has ``key``,
    ``url``, ``filename``, ``execution_provider`` and either ``file_type``
    (``zip``/``onnx``) or a boolean ``archive``.
    """
    path = Path(path)
    if not path.exists():
        raise RegistryError(f"Registry file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise RegistryError(f"Invalid registry file {path}: {e}")

    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(models, list):
        raise RegistryError(f"Registry file {path} has no 'models' list")

    descriptors: List[ArtifactDescriptor] = [
        ArtifactDescriptor.from_dict(item) for item in models
    ]
    registry = validate_registry(descriptors)
    logger.info(f"Loaded registry from {path}: {len(registry)} models")
    return registry


def dump_registry(registry: Iterable[ArtifactDescriptor]) -> str:
    """Render a registry as YAML in the format load_registry reads."""
    return yaml.dump(
        {"models": [d.to_dict() for d in registry]},
        default_flow_style=False,
        sort_keys=False,
    )
