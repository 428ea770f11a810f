"""
Registry Data Models

Typed records for the Docker Registry HTTP API v2 / OCI Distribution
responses the dashboard consumes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from registry_errors import ProtocolError

# Raised by wrong-shaped JSON fields while decoding
MALFORMED_FIELD_ERRORS = (TypeError, ValueError, AttributeError, KeyError)


def string_list(value: Any, field_name: str) -> List[str]:
    """Validate a JSON array of names; null counts as empty"""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ProtocolError(f"{field_name} is not a list of strings")
    return list(value)


OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"

# Preference order for the Accept header on manifest fetches
MANIFEST_MEDIA_TYPES = [
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
    DOCKER_MANIFEST_V1,
]

MANIFEST_KINDS = {
    OCI_IMAGE_INDEX: "OCI image index",
    OCI_IMAGE_MANIFEST: "OCI image manifest",
    DOCKER_MANIFEST_LIST: "Docker manifest list",
    DOCKER_MANIFEST_V2: "Docker manifest v2",
    DOCKER_MANIFEST_V1: "Docker manifest v1",
}

V1_LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"


@dataclass(frozen=True)
class RegistryConfig:
    """One registry endpoint with optional Basic-Auth credentials"""

    url: str
    username: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "url", self.url.rstrip("/"))

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class TagsList:
    name: str
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TagsList":
        if not isinstance(data, dict) or "name" not in data:
            raise ProtocolError("tags response is missing the repository name")
        # distribution answers "tags": null once the last tag is gone
        return cls(name=data["name"], tags=string_list(data.get("tags"), "tags"))


@dataclass
class Platform:
    architecture: str
    os: str
    variant: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.os, self.architecture]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)


@dataclass
class Descriptor:
    """Content descriptor: config blob, layer, or sub-manifest of an index"""

    media_type: str
    size: int
    digest: str
    platform: Optional[Platform] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Descriptor":
        if not isinstance(data, dict):
            raise ProtocolError("descriptor is not an object")
        try:
            platform = None
            if data.get("platform"):
                raw = data["platform"]
                platform = Platform(
                    architecture=raw.get("architecture", "unknown"),
                    os=raw.get("os", "unknown"),
                    variant=raw.get("variant"),
                )
            descriptor = cls(
                media_type=data.get("mediaType", ""),
                size=int(data.get("size") or 0),
                digest=data.get("digest", ""),
                platform=platform,
            )
        except MALFORMED_FIELD_ERRORS as e:
            raise ProtocolError(f"malformed descriptor: {e}") from e
        if not isinstance(descriptor.media_type, str) or not isinstance(descriptor.digest, str):
            raise ProtocolError("descriptor mediaType and digest must be strings")
        return descriptor


@dataclass
class Manifest:
    """Single-platform manifest or multi-platform index"""

    schema_version: int
    media_type: str = ""
    config: Optional[Descriptor] = None
    layers: List[Descriptor] = field(default_factory=list)
    manifests: List[Descriptor] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any], content_type: str = "") -> "Manifest":
        if not isinstance(data, dict) or "schemaVersion" not in data:
            raise ProtocolError("manifest is missing schemaVersion")
        try:
            return cls._parse(data, content_type)
        except MALFORMED_FIELD_ERRORS as e:
            raise ProtocolError(f"malformed manifest: {e}") from e

    @classmethod
    def _parse(cls, data: Dict[str, Any], content_type: str) -> "Manifest":
        schema_version = data["schemaVersion"]
        media_type = data.get("mediaType") or content_type.split(";")[0].strip()
        if not isinstance(media_type, str):
            raise ProtocolError("manifest mediaType is not a string")

        if schema_version == 1:
            # Legacy v1 manifests only carry blobSums, sizes are unknown
            layers = [
                Descriptor(media_type=V1_LAYER_MEDIA_TYPE, size=0, digest=layer.get("blobSum", "unknown"))
                for layer in data.get("fsLayers", [])
            ]
            return cls(
                schema_version=1,
                media_type=media_type or DOCKER_MANIFEST_V1,
                layers=layers,
                raw=data,
            )

        config = Descriptor.from_json(data["config"]) if data.get("config") else None
        return cls(
            schema_version=schema_version,
            media_type=media_type,
            config=config,
            layers=[Descriptor.from_json(layer) for layer in data.get("layers", [])],
            manifests=[Descriptor.from_json(sub) for sub in data.get("manifests", [])],
            raw=data,
        )

    @property
    def is_index(self) -> bool:
        return "index" in self.media_type or "list" in self.media_type or bool(self.manifests)

    @property
    def total_size(self) -> int:
        if self.is_index:
            return 0
        config_size = self.config.size if self.config else 0
        return sum(layer.size for layer in self.layers) + config_size

    @property
    def kind(self) -> str:
        if self.media_type in MANIFEST_KINDS:
            return MANIFEST_KINDS[self.media_type]
        if self.is_index:
            return "Image index"
        return f"Schema v{self.schema_version} manifest"


@dataclass
class BlobMetadata:
    size: int
    digest: str


def format_bytes(size: int) -> str:
    """Human readable size, 1024-based, two decimals"""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit_index = 0
    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.2f} {units[unit_index]}"
