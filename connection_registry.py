"""
Connection Registry

Owns the configured registries, their connected/loading flags and the
persistence of their configurations. Connecting a registry attaches a live
client to the RegistryManager; disconnecting or removing detaches it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config_manager import ConfigManager, get_default_registry_from_env
from registry_client import RegistryClient
from registry_manager import RegistryManager
from registry_models import RegistryConfig

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
CONNECTED = "connected"

ClientFactory = Callable[[RegistryConfig], RegistryClient]


@dataclass
class Registry:
    """A configured registry as shown in the registry list"""

    id: str
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    connected: bool = False
    loading: bool = False
    persist: bool = True  # False for --registry entries added for one session

    @property
    def state(self) -> str:
        if self.loading:
            return CONNECTING
        return CONNECTED if self.connected else DISCONNECTED

    @property
    def config(self) -> RegistryConfig:
        return RegistryConfig(url=self.url, username=self.username, password=self.password)

    def to_storage(self) -> Dict[str, Optional[str]]:
        return {"id": self.id, "url": self.url, "username": self.username, "password": self.password}


def env_registry_id(url: str) -> str:
    return f"{url}-env"


class ConnectionRegistry:
    """Registry records plus the connections they drive"""

    def __init__(self, manager: RegistryManager, config_manager: Optional[ConfigManager] = None,
                 client_factory: Optional[ClientFactory] = None):
        self.manager = manager
        self.config_manager = config_manager
        self.client_factory = client_factory or self._default_client_factory
        self.registries: List[Registry] = []
        self.auto_connect_id: Optional[str] = None
        self._locks: Dict[str, asyncio.Lock] = {}

    def _default_client_factory(self, config: RegistryConfig) -> RegistryClient:
        settings = self.config_manager.get_app_settings() if self.config_manager else {}
        return RegistryClient.from_config(
            config,
            timeout=settings.get("request_timeout", 30),
            verify=settings.get("verify_tls", True),
            tui_debug_logger=self.manager.tui_debug_logger,
            on_api_call=self.manager.add_api_call,
        )

    def _lock(self, registry_id: str) -> asyncio.Lock:
        if registry_id not in self._locks:
            self._locks[registry_id] = asyncio.Lock()
        return self._locks[registry_id]

    @property
    def connected(self) -> List[Registry]:
        return [r for r in self.registries if r.connected]

    def find_by_url(self, url: str) -> Optional[Registry]:
        url = url.strip().rstrip("/")
        for registry in self.registries:
            if registry.url == url:
                return registry
        return None

    def get(self, registry_id: Optional[str]) -> Optional[Registry]:
        for registry in self.registries:
            if registry.id == registry_id:
                return registry
        return None

    def save(self) -> bool:
        if not self.config_manager:
            return False
        return self.config_manager.save_registries([r.to_storage() for r in self.registries if r.persist])

    def load(self, environ: Optional[Dict[str, str]] = None) -> List[Registry]:
        """Load stored registries, or seed the environment default once"""
        if self.config_manager and self.config_manager.has_config():
            self.registries = [
                Registry(id=entry["id"], url=entry["url"], username=entry.get("username"), password=entry.get("password"))
                for entry in self.config_manager.load_registries()
            ]
            logger.info(f"Loaded {len(self.registries)} stored registries")
            return self.registries

        default = get_default_registry_from_env(environ)
        if default:
            registry = Registry(id=env_registry_id(default["url"]), **default)
            self.registries = [registry]
            self.auto_connect_id = registry.id
            self.save()
            logger.info(f"Added default registry {registry.url} from environment")
        return self.registries

    def add(self, url: str, username: Optional[str] = None, password: Optional[str] = None,
            registry_id: Optional[str] = None, persist: bool = True) -> Registry:
        url = url.strip().rstrip("/")
        registry = Registry(
            id=registry_id or f"{url}-{uuid.uuid4().hex[:8]}",
            url=url,
            username=username or None,
            password=password or None,
            persist=persist,
        )
        self.registries.append(registry)
        if persist:
            self.save()
        logger.info(f"Registry added: {url}")
        return registry

    async def connect(self, registry_id: str) -> bool:
        """Ping the registry and attach its client on success"""
        registry = self.get(registry_id)
        if registry is None:
            return False

        async with self._lock(registry_id):
            if registry.connected:
                registry.loading = False
                return True

            registry.loading = True
            client = self.client_factory(registry.config)
            try:
                online = await client.ping()
                if not online:
                    await client.aclose()
                    logger.warning(f"Could not connect to registry {registry.url}")
                    return False
            except asyncio.CancelledError:
                await client.aclose()
                raise
            finally:
                registry.loading = False

            self.manager.attach(registry_id, client)
            registry.connected = True
            logger.info(f"Connected to {registry.url}")

        await self.manager.load_repositories()
        return True

    async def disconnect(self, registry_id: str) -> None:
        registry = self.get(registry_id)
        async with self._lock(registry_id):
            client = self.manager.detach(registry_id)
            if client:
                await client.aclose()
            if registry:
                registry.connected = False
                logger.info(f"Disconnected from {registry.url}")
        await self.manager.load_repositories()

    async def remove(self, registry_id: str) -> None:
        await self.disconnect(registry_id)
        self.registries = [r for r in self.registries if r.id != registry_id]
        self._locks.pop(registry_id, None)
        self.save()
        logger.info(f"Registry removed: {registry_id}")

    async def auto_connect(self) -> bool:
        """Connect the environment default registry, once"""
        if not self.auto_connect_id:
            return False
        registry_id, self.auto_connect_id = self.auto_connect_id, None
        return await self.connect(registry_id)

    async def close(self) -> None:
        """Close every open client session"""
        for registry in self.connected:
            client = self.manager.detach(registry.id)
            registry.connected = False
            if client:
                await client.aclose()
