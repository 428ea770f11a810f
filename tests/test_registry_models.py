"""Tests for the wire models and size formatting."""

import pytest

from registry_errors import ProtocolError
from registry_models import (
    DOCKER_MANIFEST_V1,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    Manifest,
    Platform,
    RegistryConfig,
    TagsList,
    format_bytes,
)


class TestRegistryConfig:
    """Tests for RegistryConfig."""

    def test_trailing_slash_is_stripped(self):
        assert RegistryConfig("https://registry.test/").url == "https://registry.test"

    def test_credentials_require_username_and_password(self):
        assert RegistryConfig("https://r", "user", "pass").has_credentials
        assert not RegistryConfig("https://r", "user", None).has_credentials
        assert not RegistryConfig("https://r", None, "pass").has_credentials

    def test_config_is_immutable(self):
        config = RegistryConfig("https://r")
        with pytest.raises(AttributeError):
            config.url = "https://other"


class TestTagsList:
    """Tests for tags/list decoding."""

    def test_null_tags_become_empty_list(self):
        tags = TagsList.from_json({"name": "library/alpine", "tags": None})
        assert tags.name == "library/alpine"
        assert tags.tags == []

    def test_missing_name_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            TagsList.from_json({"tags": ["latest"]})


class TestManifest:
    """Tests for manifest decoding and derived values."""

    def test_docker_v2_manifest(self):
        manifest = Manifest.from_json({
            "schemaVersion": 2,
            "mediaType": DOCKER_MANIFEST_V2,
            "config": {"mediaType": "application/vnd.docker.container.image.v1+json", "size": 100, "digest": "sha256:c"},
            "layers": [
                {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip", "size": 1000, "digest": "sha256:l1"},
                {"mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip", "size": 24, "digest": "sha256:l2"},
            ],
        })

        assert not manifest.is_index
        assert manifest.total_size == 1124
        assert manifest.config.digest == "sha256:c"
        assert [layer.digest for layer in manifest.layers] == ["sha256:l1", "sha256:l2"]
        assert manifest.kind == "Docker manifest v2"

    def test_oci_index(self):
        manifest = Manifest.from_json({
            "schemaVersion": 2,
            "mediaType": OCI_IMAGE_INDEX,
            "manifests": [
                {"mediaType": OCI_IMAGE_MANIFEST, "size": 500, "digest": "sha256:a",
                 "platform": {"architecture": "amd64", "os": "linux"}},
                {"mediaType": OCI_IMAGE_MANIFEST, "size": 510, "digest": "sha256:b",
                 "platform": {"architecture": "arm64", "os": "linux", "variant": "v8"}},
            ],
        })

        assert manifest.is_index
        assert manifest.total_size == 0
        assert manifest.kind == "OCI image index"
        assert [str(entry.platform) for entry in manifest.manifests] == ["linux/amd64", "linux/arm64/v8"]

    def test_index_detected_without_media_type(self):
        manifest = Manifest.from_json({
            "schemaVersion": 2,
            "manifests": [{"mediaType": OCI_IMAGE_MANIFEST, "size": 1, "digest": "sha256:a"}],
        })
        assert manifest.is_index
        assert manifest.kind == "Image index"

    def test_media_type_falls_back_to_content_type(self):
        manifest = Manifest.from_json(
            {"schemaVersion": 2, "config": {"size": 1, "digest": "sha256:c"}, "layers": []},
            content_type=f"{OCI_IMAGE_MANIFEST}; charset=utf-8",
        )
        assert manifest.media_type == OCI_IMAGE_MANIFEST
        assert manifest.kind == "OCI image manifest"

    def test_schema_v1_layers_have_unknown_size(self):
        manifest = Manifest.from_json({
            "schemaVersion": 1,
            "name": "legacy/app",
            "fsLayers": [{"blobSum": "sha256:one"}, {"blobSum": "sha256:two"}],
        })

        assert manifest.media_type == DOCKER_MANIFEST_V1
        assert manifest.kind == "Docker manifest v1"
        assert [layer.digest for layer in manifest.layers] == ["sha256:one", "sha256:two"]
        assert manifest.total_size == 0

    def test_missing_schema_version_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            Manifest.from_json({"mediaType": DOCKER_MANIFEST_V2})


class TestPlatform:
    def test_variant_is_optional(self):
        assert str(Platform(architecture="amd64", os="linux")) == "linux/amd64"


class TestFormatBytes:
    """Tests for human readable sizes."""

    @pytest.mark.parametrize("size,expected", [
        (0, "0 B"),
        (-5, "0 B"),
        (512, "512.00 B"),
        (1536, "1.50 KB"),
        (1048576, "1.00 MB"),
        (3 * 1024 ** 3, "3.00 GB"),
    ])
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected


class TestMalformedPayloads:
    """Tests that wrong-shaped fields surface as ProtocolError."""

    @pytest.mark.parametrize("document", [
        {"schemaVersion": 2, "mediaType": DOCKER_MANIFEST_V2, "layers": None},
        {"schemaVersion": 2, "manifests": [{"digest": "sha256:a", "size": 1, "platform": "linux/amd64"}]},
        {"schemaVersion": 2, "config": {"digest": "sha256:c", "size": "big"}, "layers": []},
        {"schemaVersion": 2, "layers": ["sha256:l1"]},
        {"schemaVersion": 2, "mediaType": 7},
        {"schemaVersion": 1, "fsLayers": [None]},
    ])
    def test_malformed_manifest(self, document):
        with pytest.raises(ProtocolError):
            Manifest.from_json(document)

    @pytest.mark.parametrize("tags", ["latest", [1, 2], {"a": "b"}])
    def test_malformed_tags(self, tags):
        with pytest.raises(ProtocolError):
            TagsList.from_json({"name": "library/alpine", "tags": tags})
