from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from propgrid_offline.config.models import AppConfig
from propgrid_offline.net.fetcher import NetworkFetcher
from propgrid_offline.net.interfaces import Fetcher
from propgrid_offline.storage.cache_storage import CacheStorage
from propgrid_offline.worker.clients import Clients
from propgrid_offline.worker.manager import OfflineCacheManager
from propgrid_offline.worker.notifications import NotificationCenter
from propgrid_offline.worker.registration import WorkerRegistration


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    storage: CacheStorage
    fetcher: Fetcher
    clients: Clients
    notifications: NotificationCenter
    registration: WorkerRegistration

    async def __aenter__(self) -> Runtime:
        if isinstance(self.fetcher, NetworkFetcher):
            await self.fetcher.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if isinstance(self.fetcher, NetworkFetcher):
            await self.fetcher.stop()

    def new_worker(self, config: Optional[AppConfig] = None) -> OfflineCacheManager:
        """Build a manager for ``config`` (defaults to the runtime config) sharing this runtime's state."""
        return OfflineCacheManager(
            config or self.config,
            storage=self.storage,
            fetcher=self.fetcher,
            clients=self.clients,
            notifications=self.notifications,
        )


def build_runtime(config: AppConfig, *, fetcher: Optional[Fetcher] = None) -> Runtime:
    network = fetcher if fetcher is not None else NetworkFetcher(config.network)
    clients = Clients()
    return Runtime(
        config=config,
        storage=CacheStorage(config.cache.storage_dir),
        fetcher=network,
        clients=clients,
        notifications=NotificationCenter(),
        registration=WorkerRegistration(fetcher=network, clients=clients),
    )
