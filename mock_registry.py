"""
Mock Registry for Development and Testing

In-memory Docker Registry v2 served through httpx.MockTransport. Powers the
--mock demo mode and the test suite: the real RegistryClient talks to it
over the same wire protocol it uses against a live registry.
"""

import base64
import hashlib
import json
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlencode

import httpx

from registry_models import (
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V1,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    RegistryConfig,
)

LAYER_MEDIA_TYPES = {
    DOCKER_MANIFEST_V2: "application/vnd.docker.image.rootfs.diff.tar.gzip",
    OCI_IMAGE_MANIFEST: "application/vnd.oci.image.layer.v1.tar+gzip",
}
CONFIG_MEDIA_TYPES = {
    DOCKER_MANIFEST_V2: "application/vnd.docker.container.image.v1+json",
    OCI_IMAGE_MANIFEST: "application/vnd.oci.image.config.v1+json",
}
INDEX_CHILD_TYPES = {
    OCI_IMAGE_INDEX: OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_LIST: DOCKER_MANIFEST_V2,
}

ROUTES = [
    ("base", re.compile(r"^/v2/?$")),
    ("catalog", re.compile(r"^/v2/_catalog$")),
    ("tags", re.compile(r"^/v2/(?P<name>.+)/tags/list$")),
    ("manifest", re.compile(r"^/v2/(?P<name>.+)/manifests/(?P<reference>[^/]+)$")),
    ("blob", re.compile(r"^/v2/(?P<name>.+)/blobs/(?P<digest>[^/]+)$")),
    ("token", re.compile(r"^/token$")),
]


def sha256_digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def error_response(status: int, code: str, message: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    return httpx.Response(status, json={"errors": [{"code": code, "message": message}]}, headers=headers)


class MockRegistry:
    """In-memory registry implementing the read/delete subset of the v2 API"""

    def __init__(self, url: str, username: str = None, password: str = None, anonymous_token: bool = False):
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.anonymous_token = anonymous_token  # require a Bearer token from /token
        self.issued_token = "mock-anonymous-token"

        self.tags: Dict[str, Dict[str, str]] = {}  # repo -> tag -> digest
        self.manifests: Dict[str, Dict[str, Tuple[str, bytes]]] = {}  # repo -> digest -> (media type, body)
        self.blobs: Dict[str, bytes] = {}

        self.online = True
        self.omit_digest_header = False
        self.fail_delete_tags: Set[str] = set()  # "repo:tag" entries whose delete returns 500
        self.requests: List[httpx.Request] = []

    @property
    def config(self) -> RegistryConfig:
        return RegistryConfig(url=self.url, username=self.username, password=self.password)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # Content management

    def _add_blob(self, data: bytes) -> Dict[str, object]:
        digest = sha256_digest(data)
        self.blobs[digest] = data
        return {"size": len(data), "digest": digest}

    def _add_manifest(self, repo: str, media_type: str, document: Dict) -> str:
        body = json.dumps(document, indent=3, sort_keys=True).encode()
        digest = sha256_digest(body)
        self.manifests.setdefault(repo, {})[digest] = (media_type, body)
        self.tags.setdefault(repo, {})
        return digest

    def _image_manifest(self, repo: str, seed: str, media_type: str, layer_sizes: Iterable[int],
                        platform: Optional[Tuple[str, str, Optional[str]]] = None) -> Dict:
        os_name, arch, variant = platform or ("linux", "amd64", None)
        image_config = {"architecture": arch, "os": os_name, "created": "2025-01-01T00:00:00Z", "seed": seed}
        if variant:
            image_config["variant"] = variant
        config = self._add_blob(json.dumps(image_config, sort_keys=True).encode())
        config["mediaType"] = CONFIG_MEDIA_TYPES[media_type]

        layers = []
        for index, size in enumerate(layer_sizes):
            chunk = f"{repo}:{seed}:{index}:".encode()
            layer = self._add_blob((chunk * (size // len(chunk) + 1))[:size])
            layer["mediaType"] = LAYER_MEDIA_TYPES[media_type]
            layers.append(layer)

        return {"schemaVersion": 2, "mediaType": media_type, "config": config, "layers": layers}

    def push_image(self, repo: str, tag: str, layer_sizes: Iterable[int] = (2048, 512),
                   media_type: str = DOCKER_MANIFEST_V2) -> str:
        """Store a single-platform image under repo:tag and return its digest"""
        document = self._image_manifest(repo, tag, media_type, layer_sizes)
        digest = self._add_manifest(repo, media_type, document)
        self.tags[repo][tag] = digest
        return digest

    def push_index(self, repo: str, tag: str, platforms: Iterable[Tuple[str, str, Optional[str]]],
                   media_type: str = OCI_IMAGE_INDEX) -> str:
        """Store a multi-platform index (and its per-platform images) under repo:tag"""
        child_type = INDEX_CHILD_TYPES[media_type]
        entries = []
        for os_name, arch, variant in platforms:
            document = self._image_manifest(repo, f"{tag}-{arch}{variant or ''}", child_type, (1024, 256),
                                            platform=(os_name, arch, variant))
            child_digest = self._add_manifest(repo, child_type, document)
            _, body = self.manifests[repo][child_digest]
            platform = {"architecture": arch, "os": os_name}
            if variant:
                platform["variant"] = variant
            entries.append({"mediaType": child_type, "size": len(body), "digest": child_digest, "platform": platform})

        digest = self._add_manifest(repo, media_type, {"schemaVersion": 2, "mediaType": media_type, "manifests": entries})
        self.tags[repo][tag] = digest
        return digest

    def push_v1(self, repo: str, tag: str) -> str:
        """Store a legacy schema 1 manifest"""
        layers = [{"blobSum": self._add_blob(f"{repo}:{tag}:v1".encode())["digest"]}]
        document = {"schemaVersion": 1, "name": repo, "tag": tag, "architecture": "amd64", "fsLayers": layers}
        digest = self._add_manifest(repo, DOCKER_MANIFEST_V1, document)
        self.tags[repo][tag] = digest
        return digest

    # Request handling

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        for route, pattern in ROUTES:
            match = pattern.match(path)
            if match:
                break
        else:
            return error_response(404, "NOT_FOUND", f"no route for {path}")

        if route == "token":
            return httpx.Response(200, json={"token": self.issued_token, "expires_in": 300})

        denied = self._check_auth(request)
        if denied is not None:
            return denied

        params = match.groupdict()
        if route == "base":
            return httpx.Response(200, json={})
        if route == "catalog":
            return self._paginated(request, "/v2/_catalog", "repositories", sorted(self.tags))
        if route == "tags":
            return self._handle_tags(request, params["name"])
        if route == "manifest":
            return self._handle_manifest(request, params["name"], params["reference"])
        return self._handle_blob(request, params["digest"])

    def _check_auth(self, request: httpx.Request) -> Optional[httpx.Response]:
        authorization = request.headers.get("Authorization", "")
        if self.username:
            expected = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
            if authorization != f"Basic {expected}":
                return error_response(401, "UNAUTHORIZED", "authentication required",
                                      headers={"WWW-Authenticate": f'Basic realm="{self.url}"'})
        elif self.anonymous_token and authorization != f"Bearer {self.issued_token}":
            challenge = f'Bearer realm="{self.url}/token",service="mock-registry",scope="registry:catalog:*"'
            return error_response(401, "UNAUTHORIZED", "authentication required",
                                  headers={"WWW-Authenticate": challenge})
        return None

    def _paginated(self, request: httpx.Request, path: str, key: str, items: List[str],
                   extra: Optional[Dict] = None) -> httpx.Response:
        last = request.url.params.get("last")
        n = request.url.params.get("n")
        if last:
            items = [item for item in items if item > last]

        headers = {}
        if n:
            size = int(n)
            if len(items) > size:
                next_query = urlencode({"last": items[size - 1], "n": size})
                headers["Link"] = f'<{path}?{next_query}>; rel="next"'
            items = items[:size]

        body = dict(extra or {})
        body[key] = items
        return httpx.Response(200, json=body, headers=headers)

    def _handle_tags(self, request: httpx.Request, name: str) -> httpx.Response:
        if name not in self.tags:
            return error_response(404, "NAME_UNKNOWN", f"repository {name} not known to registry")
        if not self.tags[name]:
            return httpx.Response(200, json={"name": name, "tags": None})
        return self._paginated(request, f"/v2/{name}/tags/list", "tags", sorted(self.tags[name]), extra={"name": name})

    def _resolve(self, name: str, reference: str) -> Optional[str]:
        if reference.startswith("sha256:"):
            return reference if reference in self.manifests.get(name, {}) else None
        return self.tags.get(name, {}).get(reference)

    def _handle_manifest(self, request: httpx.Request, name: str, reference: str) -> httpx.Response:
        if name not in self.tags:
            return error_response(404, "NAME_UNKNOWN", f"repository {name} not known to registry")

        if request.method == "DELETE":
            return self._delete_manifest(name, reference)

        digest = self._resolve(name, reference)
        if digest is None:
            return error_response(404, "MANIFEST_UNKNOWN", f"manifest unknown: {reference}")

        media_type, body = self.manifests[name][digest]
        headers = {"Content-Type": media_type}
        if not self.omit_digest_header:
            headers["Docker-Content-Digest"] = digest
        if request.method == "HEAD":
            headers["Content-Length"] = str(len(body))
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, content=body, headers=headers)

    def _delete_manifest(self, name: str, digest: str) -> httpx.Response:
        if not digest.startswith("sha256:"):
            return error_response(400, "DIGEST_INVALID", "deletes require a digest reference")
        if digest not in self.manifests.get(name, {}):
            return error_response(404, "MANIFEST_UNKNOWN", f"manifest unknown: {digest}")

        pointing = [tag for tag, target in self.tags[name].items() if target == digest]
        if any(f"{name}:{tag}" in self.fail_delete_tags for tag in pointing):
            return error_response(500, "UNKNOWN", "storage backend refused delete")

        del self.manifests[name][digest]
        for tag in pointing:
            del self.tags[name][tag]
        return httpx.Response(202)

    def _handle_blob(self, request: httpx.Request, digest: str) -> httpx.Response:
        data = self.blobs.get(digest)
        if data is None:
            return error_response(404, "BLOB_UNKNOWN", f"blob unknown: {digest}")
        headers = {"Content-Type": "application/octet-stream", "Docker-Content-Digest": digest}
        if request.method == "HEAD":
            headers["Content-Length"] = str(len(data))
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, content=data, headers=headers)


def build_demo_registries() -> List[MockRegistry]:
    """Sample registries for --mock mode"""
    primary = MockRegistry("https://registry.wharf.test")
    primary.push_index("library/nginx", "latest", [("linux", "amd64", None), ("linux", "arm64", "v8")])
    primary.push_image("library/nginx", "1.27", layer_sizes=(31_457_280, 4_194_304, 1024))
    primary.push_image("library/nginx", "1.25", layer_sizes=(29_360_128, 3_145_728, 1024))
    primary.push_image("library/alpine", "3.20", layer_sizes=(3_623_807,), media_type=OCI_IMAGE_MANIFEST)
    primary.push_image("library/alpine", "3.19", layer_sizes=(3_408_729,), media_type=OCI_IMAGE_MANIFEST)
    primary.push_image("team/api", "v1.0.0", layer_sizes=(52_428_800, 10_485_760, 2048))
    primary.push_image("team/api", "v1.1.0", layer_sizes=(52_428_800, 11_534_336, 2048))

    mirror = MockRegistry("https://mirror.wharf.test", username="admin", password="wharf")
    mirror.push_image("library/alpine", "3.20", layer_sizes=(3_623_807,), media_type=OCI_IMAGE_MANIFEST)
    mirror.push_image("library/alpine", "edge", layer_sizes=(3_700_000,), media_type=OCI_IMAGE_MANIFEST)
    mirror.push_index("tools/debug", "latest", [("linux", "amd64", None), ("linux", "arm", "v7")],
                      media_type=DOCKER_MANIFEST_LIST)
    mirror.push_v1("legacy/app", "1.0")

    return [primary, mirror]


def mock_client_factory(registries: Iterable[MockRegistry], **client_kwargs):
    """Client factory routing each registry URL to its mock transport"""
    from registry_client import RegistryClient

    by_url = {registry.url: registry for registry in registries}

    def factory(config: RegistryConfig) -> RegistryClient:
        registry = by_url.get(config.url)
        transport = registry.transport() if registry else httpx.MockTransport(
            lambda request: error_response(404, "NOT_FOUND", f"unknown mock registry {config.url}")
        )
        return RegistryClient.from_config(config, transport=transport, **client_kwargs)

    return factory
