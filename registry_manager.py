"""
Multi-Registry Manager

Presents every connected registry as one logical registry. Catalogs are
merged across all clients; tag, manifest and delete operations go to the
first client that answers successfully.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from registry_client import RegistryClient
from registry_errors import HTTPError, NotFoundInAnyRegistry, PartialDeleteFailure, RegistryError
from registry_models import Manifest, TagsList

logger = logging.getLogger(__name__)

API_CALL_LOG_LIMIT = 100


@dataclass
class RepositoryDeletion:
    """Outcome of deleting every tag of a repository"""

    name: str
    registry_id: Optional[str]
    attempted: int
    succeeded: int
    warning: Optional[PartialDeleteFailure] = None

    @property
    def partial(self) -> bool:
        return self.warning is not None


@dataclass
class ResolvedManifest:
    """Manifest and digest as answered by a single registry"""

    manifest: Manifest
    digest: Optional[str] = None
    digest_error: Optional[RegistryError] = None
    registry_id: Optional[str] = None


class RegistryManager:
    """Manages multiple connected registry clients"""

    def __init__(self, page_size: Optional[int] = None, tui_debug_logger=None):
        self.clients: Dict[str, RegistryClient] = {}
        self.repositories: List[str] = []
        self.tags: Dict[str, List[str]] = {}
        self.sources: Dict[str, str] = {}  # repository -> registry id that answered get_tags
        self.page_size = page_size
        self.last_error: Optional[Exception] = None
        self.api_call_log: List[Dict[str, Any]] = []  # For debug console
        self.tui_debug_logger = tui_debug_logger

    def set_tui_debug_logger(self, debug_logger):
        self.tui_debug_logger = debug_logger

    def _debug(self, message: str, **kwargs) -> None:
        if self.tui_debug_logger:
            self.tui_debug_logger.debug(message, **kwargs)

    def add_api_call(self, call_data: Dict[str, Any]):
        """Add API call to debug log"""
        self.api_call_log.append(call_data)
        # Keep only last 100 calls
        if len(self.api_call_log) > API_CALL_LOG_LIMIT:
            self.api_call_log = self.api_call_log[-API_CALL_LOG_LIMIT:]

    def attach(self, registry_id: str, client: RegistryClient) -> None:
        self.clients[registry_id] = client
        self._debug("Registry client attached", registry_id=registry_id, url=client.base_url)

    def detach(self, registry_id: str) -> Optional[RegistryClient]:
        client = self.clients.pop(registry_id, None)
        for name in [n for n, source in self.sources.items() if source == registry_id]:
            self.sources.pop(name)
            self.tags.pop(name, None)
        if client:
            self._debug("Registry client detached", registry_id=registry_id, url=client.base_url)
        return client

    async def _fetch_catalog(self, client: RegistryClient) -> List[str]:
        if self.page_size:
            return await client.get_full_catalog(page_size=self.page_size)
        return await client.get_catalog()

    async def load_repositories(self) -> List[str]:
        """Merge the catalogs of all connected registries"""
        if not self.clients:
            self.repositories = []
            self.tags.clear()
            self.sources.clear()
            return []

        registry_ids = list(self.clients)
        results = await asyncio.gather(
            *(self._fetch_catalog(self.clients[registry_id]) for registry_id in registry_ids),
            return_exceptions=True,
        )

        merged = set()
        for registry_id, result in zip(registry_ids, results):
            if isinstance(result, RegistryError):
                logger.warning(f"Failed to load repositories from {self.clients[registry_id].base_url}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            merged.update(result)

        self.repositories = sorted(merged)
        self._debug("Repository listing merged", registries=len(registry_ids), repositories=len(self.repositories))
        return list(self.repositories)

    async def _first_success(self, operation: str, name: str,
                             call: Callable[[RegistryClient], Awaitable[Any]]) -> Tuple[str, RegistryClient, Any]:
        """Try each client in order, returning the first successful result"""
        for registry_id, client in list(self.clients.items()):
            try:
                result = await call(client)
            except RegistryError as e:
                self.last_error = e
                self._debug(f"{operation} failed on registry, trying next", registry_id=registry_id, name=name, error=str(e))
                continue
            return registry_id, client, result
        raise NotFoundInAnyRegistry(operation, name)

    async def get_tags(self, name: str) -> TagsList:
        registry_id, _, tags_list = await self._first_success("get tags", name, lambda client: client.get_tags(name))
        self.tags[name] = list(tags_list.tags)
        self.sources[name] = registry_id
        return tags_list

    async def get_manifest(self, name: str, reference: str) -> Manifest:
        _, _, manifest = await self._first_success(
            "get manifest", f"{name}:{reference}", lambda client: client.get_manifest(name, reference)
        )
        return manifest

    async def get_manifest_digest(self, name: str, reference: str) -> str:
        _, _, digest = await self._first_success(
            "resolve digest", f"{name}:{reference}", lambda client: client.get_manifest_digest(name, reference)
        )
        return digest

    async def resolve_manifest(self, name: str, reference: str) -> ResolvedManifest:
        """Fetch a manifest and its digest from the same registry"""

        async def fetch(client: RegistryClient) -> ResolvedManifest:
            manifest = await client.get_manifest(name, reference)
            resolved = ResolvedManifest(manifest=manifest)
            try:
                resolved.digest = await client.get_manifest_digest(name, reference)
            except RegistryError as e:
                resolved.digest_error = e
            return resolved

        registry_id, _, resolved = await self._first_success("get manifest", f"{name}:{reference}", fetch)
        resolved.registry_id = registry_id
        return resolved

    async def _list_remaining_tags(self, client: RegistryClient, name: str, deleted_tag: str) -> List[str]:
        """Tags the registry still holds after a delete"""
        try:
            return list((await client.get_tags(name)).tags)
        except HTTPError as e:
            if e.status == 404:
                # distribution may answer 404 once the last tag is gone
                return []
            logger.warning(f"Could not re-list tags of {name} after delete: {e}")
        except RegistryError as e:
            logger.warning(f"Could not re-list tags of {name} after delete: {e}")
        return [t for t in self.tags.get(name, []) if t != deleted_tag]

    async def delete_tag(self, name: str, tag: str) -> List[str]:
        """Delete one tag and return the tags left in the repository

        Deletes go by digest, so every tag sharing the digest goes with it;
        the remaining tags are re-listed from the registry.
        """

        async def resolve_and_delete(client: RegistryClient) -> str:
            digest = await client.get_manifest_digest(name, tag)
            await client.delete_manifest(name, digest)
            return digest

        registry_id, client, digest = await self._first_success("delete tag", f"{name}:{tag}", resolve_and_delete)
        logger.info(f"Deleted {name}:{tag} ({digest}) on {client.base_url}")

        remaining = await self._list_remaining_tags(client, name, tag)
        if remaining:
            self.tags[name] = remaining
            self.sources[name] = registry_id
        else:
            self._forget_repository(name)
            logger.info(f"Repository {name} removed from listing (no tags remaining)")
        return remaining

    async def delete_repository(self, name: str) -> RepositoryDeletion:
        """Delete every tag of a repository on the first registry that has it"""
        registry_id, client, tags_list = await self._first_success(
            "delete repository", name, lambda client: client.get_tags(name)
        )

        if not tags_list.tags:
            self._forget_repository(name)
            return RepositoryDeletion(name=name, registry_id=registry_id, attempted=0, succeeded=0)

        succeeded = 0
        last_error: Optional[RegistryError] = None
        for tag in tags_list.tags:
            try:
                digest = await client.get_manifest_digest(name, tag)
                await client.delete_manifest(name, digest)
                succeeded += 1
            except RegistryError as e:
                logger.error(f"Failed to delete tag {name}:{tag}: {e}")
                last_error = e

        attempted = len(tags_list.tags)
        if succeeded == 0:
            self.last_error = last_error
            raise last_error

        self._forget_repository(name)
        deletion = RepositoryDeletion(name=name, registry_id=registry_id, attempted=attempted, succeeded=succeeded)
        if succeeded < attempted:
            deletion.warning = PartialDeleteFailure(attempted=attempted, succeeded=succeeded)
            logger.warning(f"Repository {name} partially deleted: {deletion.warning}")
        return deletion

    def _forget_repository(self, name: str) -> None:
        self.repositories = [r for r in self.repositories if r != name]
        self.tags.pop(name, None)
        self.sources.pop(name, None)
