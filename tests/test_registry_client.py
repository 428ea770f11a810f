"""Tests for the single-registry HTTP client."""

import base64

import httpx
import pytest

from mock_registry import MockRegistry
from registry_client import (
    RegistryClient,
    filter_response_headers,
    next_page_cursor,
    parse_link_header,
    parse_www_authenticate,
)
from registry_errors import HTTPError, ProtocolError, TransportError
from registry_models import MANIFEST_MEDIA_TYPES


def paths(registry: MockRegistry):
    return [request.url.path for request in registry.requests]


class TestHeaderParsing:
    """Tests for Link and WWW-Authenticate parsing."""

    def test_parse_link_header(self):
        links = parse_link_header('</v2/_catalog?last=b&n=2>; rel="next", </v2/_catalog?n=2>; rel="first"')
        assert links == {"next": "/v2/_catalog?last=b&n=2", "first": "/v2/_catalog?n=2"}

    def test_next_page_cursor(self):
        assert next_page_cursor('</v2/_catalog?last=library%2Falpine&n=2>; rel="next"') == "library/alpine"
        assert next_page_cursor("") is None
        assert next_page_cursor('</v2/_catalog?n=2>; rel="prev"') is None

    def test_parse_bearer_challenge(self):
        challenge = 'Bearer realm="https://auth.test/token",service="registry.test",scope="registry:catalog:*"'
        assert parse_www_authenticate(challenge) == {
            "realm": "https://auth.test/token",
            "service": "registry.test",
            "scope": "registry:catalog:*",
        }

    def test_basic_challenge_is_ignored(self):
        assert parse_www_authenticate('Basic realm="registry"') == {}

    def test_sensitive_headers_are_filtered(self):
        filtered = filter_response_headers({
            "Content-Type": "application/json",
            "Set-Cookie": "session=abc",
            "X-Auth-Token": "secret",
            "X-Request-Id": "42",
        })
        assert filtered == {"Content-Type": "application/json", "X-Request-Id": "42"}


class TestPing:
    """Tests for liveness checks."""

    @pytest.mark.asyncio
    async def test_ping_reachable(self, client):
        assert await client.ping() is True

    @pytest.mark.asyncio
    async def test_ping_offline_returns_false(self, registry, client):
        registry.online = False
        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_ping_rejected_credentials_returns_false(self, secured_registry, client_for):
        client = client_for(secured_registry, password="wrong")
        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_ping_invalid_url_returns_false(self):
        client = RegistryClient("not a url")
        assert await client.ping() is False


class TestCatalogAndTags:
    """Tests for catalog and tag listing."""

    @pytest.mark.asyncio
    async def test_get_catalog(self, client):
        assert await client.get_catalog() == ["library/alpine", "team/api"]

    @pytest.mark.asyncio
    async def test_get_catalog_sends_page_parameters(self, registry, client):
        repositories = await client.get_catalog(n=1)
        assert repositories == ["library/alpine"]
        assert registry.requests[-1].url.params["n"] == "1"

    @pytest.mark.asyncio
    async def test_get_tags(self, client):
        tags = await client.get_tags("library/alpine")
        assert tags.name == "library/alpine"
        assert tags.tags == ["3.19", "3.20"]

    @pytest.mark.asyncio
    async def test_unknown_repository_is_http_error(self, client):
        with pytest.raises(HTTPError) as exc_info:
            await client.get_tags("missing/repo")
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_offline_is_transport_error(self, registry, client):
        registry.online = False
        with pytest.raises(TransportError):
            await client.get_catalog()

    @pytest.mark.asyncio
    async def test_malformed_json_is_protocol_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>not json</html>"))
        client = RegistryClient("https://broken.test", transport=transport)
        with pytest.raises(ProtocolError):
            await client.get_catalog()


class TestPagination:
    """Tests for Link header pagination."""

    @pytest.fixture
    def large_registry(self):
        mock = MockRegistry("https://large.test")
        for name in ("a/one", "b/two", "c/three", "d/four", "e/five"):
            mock.push_image(name, "latest", layer_sizes=(16,))
        for tag in ("1", "2", "3"):
            mock.push_image("a/one", tag, layer_sizes=(16,))
        return mock

    @pytest.mark.asyncio
    async def test_full_catalog_follows_next_links(self, large_registry, client_for):
        client = client_for(large_registry)
        repositories = await client.get_full_catalog(page_size=2)

        assert repositories == ["a/one", "b/two", "c/three", "d/four", "e/five"]
        assert paths(large_registry).count("/v2/_catalog") == 3

    @pytest.mark.asyncio
    async def test_all_tags_follows_next_links(self, large_registry, client_for):
        client = client_for(large_registry)
        tags = await client.get_all_tags("a/one", page_size=3)

        assert tags.name == "a/one"
        assert tags.tags == ["1", "2", "3", "latest"]
        assert paths(large_registry).count("/v2/a/one/tags/list") == 2


class TestManifests:
    """Tests for manifest fetch, digest resolution and delete."""

    @pytest.mark.asyncio
    async def test_get_manifest_accept_header_order(self, registry, client):
        manifest = await client.get_manifest("library/alpine", "3.20")

        assert not manifest.is_index
        assert len(manifest.layers) == 2
        assert registry.requests[-1].headers["accept"] == ", ".join(MANIFEST_MEDIA_TYPES)

    @pytest.mark.asyncio
    async def test_get_manifest_index(self, registry, client):
        registry.push_index("library/nginx", "latest", [("linux", "amd64", None), ("linux", "arm64", "v8")])
        manifest = await client.get_manifest("library/nginx", "latest")

        assert manifest.is_index
        assert [str(entry.platform) for entry in manifest.manifests] == ["linux/amd64", "linux/arm64/v8"]

    @pytest.mark.asyncio
    async def test_get_manifest_digest(self, registry, client):
        digest = await client.get_manifest_digest("library/alpine", "3.19")

        assert digest == registry.tags["library/alpine"]["3.19"]
        assert registry.requests[-1].method == "HEAD"

    @pytest.mark.asyncio
    async def test_missing_digest_header_is_protocol_error(self, registry, client):
        registry.omit_digest_header = True
        with pytest.raises(ProtocolError) as exc_info:
            await client.get_manifest_digest("library/alpine", "3.19")

        assert not isinstance(exc_info.value, HTTPError)
        assert "digest" in str(exc_info.value).lower()

    @pytest.mark.asyncio
    async def test_delete_manifest(self, registry, client):
        digest = await client.get_manifest_digest("library/alpine", "3.19")
        await client.delete_manifest("library/alpine", digest)

        tags = await client.get_tags("library/alpine")
        assert tags.tags == ["3.20"]
        assert registry.requests[-2].method == "DELETE"

    @pytest.mark.asyncio
    async def test_delete_refused_is_http_error(self, registry, client):
        registry.fail_delete_tags.add("library/alpine:3.19")
        digest = await client.get_manifest_digest("library/alpine", "3.19")

        with pytest.raises(HTTPError) as exc_info:
            await client.delete_manifest("library/alpine", digest)
        assert exc_info.value.status == 500


class TestBlobs:
    """Tests for blob metadata and download."""

    @pytest.mark.asyncio
    async def test_blob_metadata_and_download(self, client):
        manifest = await client.get_manifest("team/api", "v1")
        layer = manifest.layers[0]

        metadata = await client.get_blob_metadata("team/api", layer.digest)
        assert metadata.digest == layer.digest
        assert metadata.size == layer.size

        data = await client.download_blob("team/api", layer.digest)
        assert len(data) == layer.size

    @pytest.mark.asyncio
    async def test_unknown_blob_is_http_error(self, client):
        with pytest.raises(HTTPError) as exc_info:
            await client.get_blob_metadata("team/api", "sha256:" + "0" * 64)
        assert exc_info.value.status == 404


class TestAuthentication:
    """Tests for Basic, bearer and anonymous token authentication."""

    @pytest.mark.asyncio
    async def test_basic_auth_header(self, secured_registry, client_for):
        client = client_for(secured_registry)
        assert await client.get_catalog() == ["private/app"]

        expected = base64.b64encode(b"admin:s3cret").decode()
        assert secured_registry.requests[-1].headers["authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_basic_auth_takes_precedence_over_token(self, secured_registry, client_for):
        client = client_for(secured_registry, token="cached-bearer-token")
        await client.get_catalog()

        authorization = secured_registry.requests[-1].headers["authorization"]
        assert authorization.startswith("Basic ")
        assert "cached-bearer-token" not in authorization

    @pytest.mark.asyncio
    async def test_bearer_token_without_credentials(self, registry, client):
        client.set_token("bearer-123")
        await client.get_catalog()
        assert registry.requests[-1].headers["authorization"] == "Bearer bearer-123"

    @pytest.mark.asyncio
    async def test_anonymous_requests_carry_no_authorization(self, registry, client):
        await client.get_catalog()
        assert "authorization" not in registry.requests[-1].headers

    @pytest.mark.asyncio
    async def test_anonymous_token_challenge(self, client_for):
        mock = MockRegistry("https://hub.test", anonymous_token=True)
        mock.push_image("library/busybox", "latest")
        client = client_for(mock)

        assert await client.get_catalog() == ["library/busybox"]
        assert client.token == mock.issued_token
        assert paths(mock) == ["/v2/_catalog", "/token", "/v2/_catalog"]
        assert mock.requests[1].url.params["service"] == "mock-registry"

    @pytest.mark.asyncio
    async def test_token_flow_disabled(self, client_for):
        mock = MockRegistry("https://hub.test", anonymous_token=True)
        client = client_for(mock, token_auth=False)

        with pytest.raises(HTTPError) as exc_info:
            await client.get_catalog()
        assert exc_info.value.status == 401


class TestApiCallRecording:
    """Tests for the debug console records."""

    @pytest.mark.asyncio
    async def test_records_each_exchange(self, registry, client_for):
        records = []
        client = client_for(registry, on_api_call=records.append)

        await client.ping()
        await client.get_tags("library/alpine")

        assert [r["method"] for r in records] == ["GET", "GET"]
        assert records[0]["url"] == "https://registry.test/v2/"
        assert records[1]["status_code"] == 200
        assert "3.19" in records[1]["content_preview"]

    @pytest.mark.asyncio
    async def test_records_transport_failures(self, registry, client_for):
        records = []
        client = client_for(registry, on_api_call=records.append)
        registry.online = False

        await client.ping()
        assert records[0]["status_code"] == 0
        assert "error" in records[0]


class TestSession:
    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, registry):
        async with RegistryClient(registry.url, transport=registry.transport()) as client:
            assert client.session is not None
            await client.ping()
        assert client.session is None
