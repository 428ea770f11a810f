"""
Registry HTTP Client

Async client for one Docker Registry HTTP API v2 / OCI Distribution
endpoint. Every operation is a single authenticated request (pagination
helpers aside) whose response is decoded into a typed result or raised as
a typed failure from registry_errors.
"""

import base64
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from registry_errors import HTTPError, ProtocolError, TransportError
from registry_models import (
    MANIFEST_MEDIA_TYPES,
    BlobMetadata,
    Manifest,
    RegistryConfig,
    TagsList,
    string_list,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Wharf/0.1.0"
DEFAULT_TIMEOUT = 30
DEFAULT_PAGE_SIZE = 100
DIGEST_HEADER = "Docker-Content-Digest"

# Safe headers to include in debug records
SAFE_RESPONSE_HEADERS = {
    'content-type', 'content-length', 'content-encoding',
    'date', 'cache-control', 'expires', 'last-modified',
    'link', 'location',
    'docker-content-digest', 'docker-distribution-api-version',
    'x-ratelimit-limit', 'x-ratelimit-remaining', 'x-ratelimit-reset',
    'www-authenticate',
}


def filter_response_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Drop Set-Cookie, Authorization and auth-looking custom headers"""
    filtered = {}
    for key, value in headers.items():
        lowered = key.lower()
        if lowered in SAFE_RESPONSE_HEADERS:
            filtered[key] = value
        elif lowered.startswith('x-') and not any(s in lowered for s in ('auth', 'token', 'key', 'secret')):
            filtered[key] = value
    return filtered


def parse_link_header(link_header: str) -> Dict[str, str]:
    """Parse Link header: <url>; rel="next", <url2>; rel="prev" """
    links = {}
    if link_header:
        for url, rel in re.findall(r'<([^>]+)>;\s*rel="([^"]+)"', link_header):
            links[rel] = url
    return links


def next_page_cursor(link_header: str) -> Optional[str]:
    """Extract the `last` cursor from the rel="next" link, if any"""
    next_url = parse_link_header(link_header).get("next")
    if not next_url:
        return None
    params = parse_qs(urlparse(next_url).query)
    return params.get("last", [None])[0]


def parse_www_authenticate(header: str) -> Dict[str, str]:
    """Parse a Bearer challenge into realm, service and scope"""
    if not header or not header.strip().lower().startswith("bearer"):
        return {}
    return dict(re.findall(r'(\w+)="([^"]*)"', header))


class RegistryClient:
    """HTTP client for Docker Registry API v2 with authentication support"""

    def __init__(self, base_url: str, username: str = None, password: str = None, token: str = None,
                 timeout: float = DEFAULT_TIMEOUT, verify: bool = True, token_auth: bool = True,
                 transport: Optional[httpx.AsyncBaseTransport] = None, tui_debug_logger=None,
                 on_api_call: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.config = RegistryConfig(url=base_url, username=username, password=password)
        self.base_url = self.config.url
        self.token = token
        self.timeout = timeout
        self.verify = verify
        self.token_auth = token_auth  # anonymous WWW-Authenticate challenge flow
        self.transport = transport
        self.tui_debug_logger = tui_debug_logger
        self.on_api_call = on_api_call
        self.session: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: RegistryConfig, **kwargs) -> "RegistryClient":
        return cls(config.url, username=config.username, password=config.password, **kwargs)

    async def __aenter__(self):
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _get_session(self) -> httpx.AsyncClient:
        if self.session is None:
            self.session = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify,
                follow_redirects=True,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            )
        return self.session

    async def aclose(self) -> None:
        if self.session:
            await self.session.aclose()
            self.session = None

    def set_token(self, token: Optional[str]) -> None:
        """Store a bearer token obtained elsewhere"""
        self.token = token

    def _debug(self, message: str, **kwargs) -> None:
        if self.tui_debug_logger:
            self.tui_debug_logger.debug(message, **kwargs)

    def _get_auth_headers(self) -> Dict[str, str]:
        """Basic auth when credentials are configured, else a cached bearer token"""
        if self.config.has_credentials:
            credentials = base64.b64encode(f"{self.config.username}:{self.config.password}".encode()).decode()
            return {"Authorization": f"Basic {credentials}"}
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _record_call(self, method: str, url: str, start_time: float,
                     response: Optional[httpx.Response] = None, error: Optional[str] = None) -> None:
        duration = int((time.time() - start_time) * 1000)
        if response is not None:
            logger.debug(f"{method} {url} -> {response.status_code} ({duration}ms)")
        else:
            logger.debug(f"{method} {url} failed: {error} ({duration}ms)")

        if not self.on_api_call:
            return

        record = {
            "url": url,
            "method": method,
            "status_code": response.status_code if response is not None else 0,
            "duration_ms": duration,
            "size_bytes": len(response.content) if response is not None else 0,
            "headers": filter_response_headers(dict(response.headers)) if response is not None else {},
            "content_preview": "",
            "timestamp": time.strftime("%H:%M:%S.") + f"{int((time.time() % 1) * 1000):03d}",
        }
        if response is not None:
            content_type = response.headers.get("content-type", "")
            if "json" in content_type or "text" in content_type:
                record["content_preview"] = response.text[:500]
            elif response.content:
                record["content_preview"] = f"<{len(response.content)} bytes of {content_type or 'binary data'}>"
        if error:
            record["error"] = error
            record["content_preview"] = f"Error: {error}"
        self.on_api_call(record)

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       headers: Optional[Dict[str, str]] = None, allow_challenge: bool = True) -> httpx.Response:
        """Issue one request; raise TransportError or HTTPError on failure"""
        url = f"{self.base_url}{path}"
        request_headers = dict(headers or {})
        request_headers.update(self._get_auth_headers())

        start_time = time.time()
        try:
            response = await self._get_session().request(method, url, params=params, headers=request_headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self._record_call(method, url, start_time, error=str(e))
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

        self._record_call(method, url, start_time, response=response)

        if response.status_code == 401 and allow_challenge and self.token_auth and not self.config.has_credentials:
            self._debug("Received 401 Unauthorized", url=url, has_token=bool(self.token))
            if await self._acquire_token(response.headers.get("WWW-Authenticate", "")):
                self._debug("Token acquired, re-issuing request", url=url)
                return await self._request(method, path, params=params, headers=headers, allow_challenge=False)

        if not response.is_success:
            raise HTTPError(response.status_code, response.reason_phrase, url=url)
        return response

    async def _acquire_token(self, challenge: str) -> bool:
        """Fetch an anonymous bearer token from the challenge realm"""
        auth_params = parse_www_authenticate(challenge)
        realm = auth_params.get("realm")
        if not realm:
            self._debug("No Bearer realm in challenge - continuing with 401")
            return False

        query = {key: auth_params[key] for key in ("service", "scope") if auth_params.get(key)}
        self._debug("Token request initiated", token_url=realm, **query)
        try:
            response = await self._get_session().get(realm, params=query)
        except httpx.HTTPError as e:
            self._debug("Token request failed", error=str(e))
            return False

        if not response.is_success:
            self._debug("Token request rejected", status_code=response.status_code)
            return False
        try:
            token_data = response.json()
        except ValueError:
            return False

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            return False
        self.token = token
        return True

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"Malformed JSON from {response.request.url}: {e}") from e

    @staticmethod
    def _page_params(n: Optional[int], last: Optional[str]) -> Dict[str, Any]:
        params = {}
        if n:
            params["n"] = n
        if last:
            params["last"] = last
        return params

    async def ping(self) -> bool:
        """Check registry liveness (GET /v2/); never raises"""
        try:
            await self._request("GET", "/v2/")
            return True
        except (TransportError, HTTPError) as e:
            logger.info(f"Registry {self.base_url} is not reachable: {e}")
            return False

    async def get_catalog(self, n: int = None, last: str = None) -> List[str]:
        """Get repository catalog (GET /v2/_catalog)"""
        response = await self._request("GET", "/v2/_catalog", params=self._page_params(n, last))
        data = self._json(response)
        if not isinstance(data, dict):
            raise ProtocolError("catalog response is not an object")
        return string_list(data.get("repositories"), "repositories")

    async def get_tags(self, name: str, n: int = None, last: str = None) -> TagsList:
        """Get tags for repository (GET /v2/{name}/tags/list)"""
        response = await self._request("GET", f"/v2/{name}/tags/list", params=self._page_params(n, last))
        return TagsList.from_json(self._json(response))

    async def _paginate(self, path: str, key: str, page_size: int) -> Dict[str, Any]:
        """Follow rel="next" Link headers until the last page"""
        items = []
        body = {}
        cursor = None
        while True:
            response = await self._request("GET", path, params=self._page_params(page_size, cursor))
            body = self._json(response)
            if not isinstance(body, dict):
                raise ProtocolError(f"{path} response is not an object")
            page = string_list(body.get(key), key)
            items.extend(page)

            next_cursor = next_page_cursor(response.headers.get("Link", ""))
            if not next_cursor or not page or next_cursor == cursor:
                break
            cursor = next_cursor

        body[key] = items
        return body

    async def get_full_catalog(self, page_size: int = DEFAULT_PAGE_SIZE) -> List[str]:
        body = await self._paginate("/v2/_catalog", "repositories", page_size)
        return body["repositories"]

    async def get_all_tags(self, name: str, page_size: int = DEFAULT_PAGE_SIZE) -> TagsList:
        body = await self._paginate(f"/v2/{name}/tags/list", "tags", page_size)
        return TagsList.from_json(body)

    async def get_manifest(self, name: str, reference: str) -> Manifest:
        """Get manifest by tag or digest (GET /v2/{name}/manifests/{reference})"""
        response = await self._request(
            "GET",
            f"/v2/{name}/manifests/{reference}",
            headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
        )
        return Manifest.from_json(self._json(response), content_type=response.headers.get("content-type", ""))

    async def get_manifest_digest(self, name: str, reference: str) -> str:
        """Resolve a reference to its digest (HEAD /v2/{name}/manifests/{reference})"""
        response = await self._request(
            "HEAD",
            f"/v2/{name}/manifests/{reference}",
            headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)},
        )
        digest = response.headers.get(DIGEST_HEADER)
        if not digest:
            raise ProtocolError("No digest header returned")
        return digest

    async def delete_manifest(self, name: str, digest: str) -> None:
        """Delete a manifest by digest (DELETE /v2/{name}/manifests/{digest})"""
        await self._request("DELETE", f"/v2/{name}/manifests/{digest}")

    async def get_blob_metadata(self, name: str, digest: str) -> BlobMetadata:
        response = await self._request("HEAD", f"/v2/{name}/blobs/{digest}")
        try:
            size = int(response.headers.get("Content-Length") or 0)
        except ValueError as e:
            raise ProtocolError(f"Invalid Content-Length for blob {digest}") from e
        return BlobMetadata(size=size, digest=digest)

    async def download_blob(self, name: str, digest: str) -> bytes:
        response = await self._request("GET", f"/v2/{name}/blobs/{digest}")
        return response.content
