"""
QuickMock Instance Manager

Supervises any number of MockServer instances keyed by server id, backed
by a ConfigStore. Port exclusivity is checked against the manager's own
bookkeeping before binding; it is best-effort, not race-free.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Dict, Any, Optional

import httpx

from .config_store import ConfigStore, InMemoryConfigStore
from .errors import NotFoundError, PortInUseError
from .logstream import LogListener, LogStream
from .models import MockServerConfig, Profile
from .server import MockServer
from .template import TemplateResolver

logger = logging.getLogger("quickmock.manager")


@dataclass
class ServerStatus:
    """Snapshot of one configured server, running or not."""

    config: MockServerConfig
    running: bool
    port: int
    route_count: int
    resource_count: int
    resource_items: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'config': self.config.to_dict(),
            'running': self.running,
            'port': self.port,
            'routeCount': self.route_count,
            'resourceCount': self.resource_count,
            'resourceItems': dict(self.resource_items),
        }


class InstanceManager:
    """
    Registry of mock server instances plus a process-wide log stream.

    Stopped instances stay registered so a later start keeps their store,
    overrides and sequence cursors.

    Example:
        manager = InstanceManager(FileConfigStore())
        config = manager.create(create_default_config(port=4000))
        await manager.start(config.id)
        manager.subscribe_log(lambda entry: print(entry.to_dict()))
        await manager.stop_all()
    """

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        faker_locale: str = 'en_US',
        faker_seed: Optional[int] = None,
        proxy_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize instance manager.

        Args:
            config_store: Where server configs live (in-memory if None)
            faker_locale: Locale for each instance's faker generators
            faker_seed: Optional seed for reproducible fake data
            proxy_transport: Optional httpx transport passed to every instance
        """
        self.config_store = config_store or InMemoryConfigStore()
        self.faker_locale = faker_locale
        self.faker_seed = faker_seed
        self.proxy_transport = proxy_transport
        self.instances: Dict[str, MockServer] = {}
        self.log_stream = LogStream()
        self._unsubscribers: Dict[str, Callable[[], None]] = {}

    # -- configs ---------------------------------------------------------

    def create(self, config: MockServerConfig) -> MockServerConfig:
        """Persist a new server config without starting it."""
        saved = self.config_store.save(config)
        logger.info(f"Created server '{saved.name}' ({saved.id}) on port {saved.port}")
        return saved

    def get_config(self, server_id: str) -> MockServerConfig:
        """
        Load a persisted config.

        Raises:
            NotFoundError: If no config has that id
        """
        config = self.config_store.get(server_id)
        if config is None:
            raise NotFoundError(f"Server '{server_id}' not found")
        return config

    def get_instance(self, server_id: str) -> Optional[MockServer]:
        return self.instances.get(server_id)

    def reload(self, server_id: str, config: MockServerConfig) -> MockServerConfig:
        """
        Persist a new config for ``server_id`` and apply it to its instance, if any.

        Applying it clears that instance's overrides and sequence cursors.
        """
        config.id = server_id
        saved = self.config_store.save(config)

        server = self.instances.get(server_id)
        if server is not None:
            server.reload(saved)
        return saved

    # -- profiles --------------------------------------------------------

    def save_profile(self, server_id: str, profile: Profile) -> Profile:
        """Add or replace a profile; live overrides are left alone."""
        config = self.get_config(server_id)
        config.profiles[profile.name] = profile
        self.config_store.save(config)

        server = self.instances.get(server_id)
        if server is not None:
            server.config.profiles[profile.name] = profile
        return profile

    def delete_profile(self, server_id: str, name: str):
        """
        Remove a profile; if it was active, the active pointer is cleared.

        Raises:
            NotFoundError: If the server or profile does not exist
        """
        config = self.get_config(server_id)
        if name not in config.profiles:
            raise NotFoundError(f"Profile '{name}' not found")

        del config.profiles[name]
        if config.active_profile == name:
            config.active_profile = None
        self.config_store.save(config)

        server = self.instances.get(server_id)
        if server is not None:
            server.config.profiles.pop(name, None)
            if server.config.active_profile == name:
                server.deactivate_profile()

    def activate_profile(self, server_id: str, name: str):
        """
        Persist ``name`` as the active profile and apply it to a live instance.

        Raises:
            NotFoundError: If the server or profile does not exist
        """
        config = self.get_config(server_id)
        if name not in config.profiles:
            raise NotFoundError(f"Profile '{name}' not found")

        config.active_profile = name
        self.config_store.save(config)

        server = self.instances.get(server_id)
        if server is not None:
            server.config.profiles[name] = config.profiles[name]
            server.activate_profile(name)
        logger.info(f"Server {server_id}: profile '{name}' activated")

    def deactivate_profile(self, server_id: str):
        config = self.get_config(server_id)
        config.active_profile = None
        self.config_store.save(config)

        server = self.instances.get(server_id)
        if server is not None:
            server.deactivate_profile()
        logger.info(f"Server {server_id}: profile deactivated")

    # -- lifecycle -------------------------------------------------------

    def _build_instance(self, config: MockServerConfig) -> MockServer:
        template = TemplateResolver(locale=self.faker_locale, seed=self.faker_seed)
        server = MockServer(config, template=template, proxy_transport=self.proxy_transport)
        self._unsubscribers[config.id] = server.subscribe_log(self.log_stream.emit)
        return server

    async def start(self, server_id: str) -> MockServer:
        """
        Start a server, creating its instance on first use.

        Returns:
            The running MockServer (unchanged if it was already running)

        Raises:
            NotFoundError: If no config has that id
            PortInUseError: If another running instance holds the port, or binding fails
        """
        server = self.instances.get(server_id)
        if server is not None and server.running:
            return server

        config = server.config if server is not None else self.get_config(server_id)

        if config.port != 0:
            for other_id, other in self.instances.items():
                if other_id != server_id and other.running and other.port == config.port:
                    raise PortInUseError(
                        f"Port {config.port} is already used by server '{other_id}'"
                    )

        created = server is None
        if created:
            server = self._build_instance(config)

        try:
            await server.start()
        except Exception:
            if created:
                self._unsubscribers.pop(server_id)()
            raise

        self.instances[server_id] = server
        logger.info(f"Started server '{config.name}' ({server_id}) on port {server.port}")
        return server

    async def stop(self, server_id: str):
        """Stop a server; unknown or stopped ids are a no-op."""
        server = self.instances.get(server_id)
        if server is None:
            return
        await server.stop()

    async def delete(self, server_id: str) -> bool:
        """
        Stop a server, drop its instance and remove its persisted config.

        Returns:
            True if a persisted config was removed
        """
        await self.stop(server_id)
        self.instances.pop(server_id, None)
        unsubscribe = self._unsubscribers.pop(server_id, None)
        if unsubscribe is not None:
            unsubscribe()

        removed = self.config_store.delete(server_id)
        if removed:
            logger.info(f"Deleted server {server_id}")
        return removed

    async def stop_all(self):
        for server_id in list(self.instances):
            await self.stop(server_id)

    # -- status and logs -------------------------------------------------

    def _status(self, config: MockServerConfig) -> ServerStatus:
        server = self.instances.get(config.id)
        return ServerStatus(
            config=config,
            running=server.running if server is not None else False,
            port=server.port if server is not None else config.port,
            route_count=len(config.routes),
            resource_count=len(config.resources),
            resource_items=server.get_store().counts() if server is not None else {}
        )

    def status(self, server_id: str) -> ServerStatus:
        return self._status(self.get_config(server_id))

    def list(self) -> List[ServerStatus]:
        """Status of every persisted server; live counts come from its instance if one exists."""
        return [self._status(config) for config in self.config_store.list()]

    def subscribe_log(self, listener: LogListener) -> Callable[[], None]:
        """Listen to log entries from every instance."""
        return self.log_stream.subscribe(listener)
