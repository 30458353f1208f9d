from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from propgrid_offline.config.models import AppConfig
from propgrid_offline.core.errors import CacheStorageError, InstallError, NetworkError
from propgrid_offline.core.models import Request, Response
from propgrid_offline.core.utils import format_rfc3339, normalize_url, utc_now
from propgrid_offline.net.interfaces import Fetcher
from propgrid_offline.storage.cache_storage import CacheStorage
from propgrid_offline.storage.models import GenerationKeys
from propgrid_offline.storage.pending import PendingSubmissionStore
from propgrid_offline.worker.clients import Client, Clients
from propgrid_offline.worker.events import (
    ActivateEvent,
    CacheUrlsMessage,
    ErrorEvent,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    NotificationClickEvent,
    PushEvent,
    SkipWaitingMessage,
    StorePendingMessage,
    SyncEvent,
    WorkerEvent,
)
from propgrid_offline.worker.notifications import Notification, NotificationAction, NotificationCenter
from propgrid_offline.worker.policy import generations_to_delete, route_request
from propgrid_offline.worker.strategies import WorkerContext, execute_plan

logger = logging.getLogger(__name__)

VIEW_ACTION = "view"
DISMISS_ACTION = "dismiss"


class WorkerState(enum.Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


@dataclass(frozen=True, slots=True)
class EventOutcome:
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


SkipWaitingHook = Callable[["OfflineCacheManager"], Awaitable[None]]


class OfflineCacheManager:
    """
    One version of the offline cache manager.

    ``dispatch`` is the single entry point for runtime events. Fetch events return the
    response to serve (None when the request is not intercepted) and raise NetworkError
    when no response can be produced. Every other event is handled inside the event
    boundary: failures are logged and reported through an EventOutcome.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        storage: CacheStorage,
        fetcher: Fetcher,
        clients: Clients,
        notifications: NotificationCenter,
    ) -> None:
        self._config = config
        self._storage = storage
        self._fetcher = fetcher
        self._clients = clients
        self._notifications = notifications
        self.version = config.cache.version
        self.keys = GenerationKeys.from_settings(config.cache)
        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self._skip_waiting_hook: Optional[SkipWaitingHook] = None
        self._origin = config.app.origin
        self._ctx = WorkerContext(
            origin=self._origin,
            keys=self.keys,
            settings=config.cache,
            storage=storage,
            fetcher=fetcher,
        )
        self._pending = PendingSubmissionStore(
            storage,
            cache_name=self.keys.dynamic_key,
            key_url=normalize_url(config.sync.pending_key, self._origin),
        )

    def __repr__(self) -> str:
        return f"OfflineCacheManager(version={self.version!r}, state={self.state.value})"

    @property
    def pending(self) -> PendingSubmissionStore:
        return self._pending

    def set_skip_waiting_hook(self, hook: Optional[SkipWaitingHook]) -> None:
        self._skip_waiting_hook = hook

    async def skip_waiting(self) -> None:
        self.skip_waiting_requested = True
        if self._skip_waiting_hook is not None:
            await self._skip_waiting_hook(self)

    async def dispatch(self, event: WorkerEvent) -> Any:
        if isinstance(event, FetchEvent):
            return await self._on_fetch(event)

        try:
            if isinstance(event, InstallEvent):
                value = await self._on_install()
            elif isinstance(event, ActivateEvent):
                value = await self._on_activate()
            elif isinstance(event, SyncEvent):
                value = await self._on_sync(event)
            elif isinstance(event, PushEvent):
                value = await self._on_push(event)
            elif isinstance(event, NotificationClickEvent):
                value = await self._on_notification_click(event)
            elif isinstance(event, MessageEvent):
                value = await self._on_message(event)
            elif isinstance(event, ErrorEvent):
                value = self._on_error(event)
            else:
                raise TypeError(f"Unsupported worker event: {type(event).__name__}")
        except Exception as e:
            logger.exception("Worker event handler failed. version=%s event=%s", self.version, type(event).__name__)
            return EventOutcome(ok=False, error=e)
        return EventOutcome(ok=True, value=value)

    async def _on_install(self) -> int:
        logger.info("Installing worker. version=%s cache=%s", self.version, self.keys.static_key)
        urls = [normalize_url(url, self._origin) for url in self._config.cache.precache_urls]
        cache = self._storage.generation(self.keys.static_key)
        try:
            await cache.add_all(urls, self._fetcher)
        except (NetworkError, CacheStorageError) as e:
            raise InstallError(f"Precaching failed. version={self.version} error={e}") from e
        logger.info("Worker installed. version=%s precached=%d", self.version, len(urls))
        if self._config.cache.skip_waiting_on_install:
            await self.skip_waiting()
        return len(urls)

    async def _on_activate(self) -> set[str]:
        logger.info("Activating worker. version=%s", self.version)
        stale = generations_to_delete(await self._storage.keys(), self.keys)
        for name in sorted(stale):
            await self._storage.delete(name)
        await self._clients.claim(self.version)
        logger.info("Worker activated. version=%s deleted_caches=%d", self.version, len(stale))
        return stale

    async def _on_fetch(self, event: FetchEvent) -> Optional[Response]:
        plan = route_request(
            event.request,
            origin=self._origin,
            keys=self.keys,
            settings=self._config.cache,
        )
        logger.debug("Routing request. url=%s strategy=%s", plan.url, plan.strategy.value)
        try:
            return await execute_plan(plan, event.request, self._ctx)
        except NetworkError:
            raise
        except Exception as e:
            logger.exception("Unexpected fetch handler failure. url=%s", plan.url)
            raise NetworkError(plan.url, f"error={e}") from e

    async def _on_sync(self, event: SyncEvent) -> bool:
        if event.tag != self._config.sync.tag:
            logger.debug("Ignoring sync event. tag=%s", event.tag)
            return False
        return await self.background_sync()

    async def background_sync(self) -> bool:
        """Replay the pending form submission; True when it was delivered and cleared."""
        payload = await self._pending.load()
        if payload is None:
            logger.debug("Background sync found no pending submission.")
            return False

        endpoint = normalize_url(self._config.sync.endpoint, self._origin)
        try:
            response = await self._fetcher.fetch(Request.post_json(endpoint, payload))
        except NetworkError:
            logger.error("Background sync failed. endpoint=%s", endpoint, exc_info=True)
            return False

        if not response.ok:
            logger.warning("Background sync rejected. endpoint=%s status=%s", endpoint, response.status)
            return False

        await self._pending.clear()
        logger.info("Background sync delivered pending submission. endpoint=%s", endpoint)
        return True

    async def _on_push(self, event: PushEvent) -> Notification:
        settings = self._config.notifications
        notification = Notification(
            title=settings.title,
            body=event.data if event.data else settings.default_body,
            icon=settings.icon,
            badge=settings.badge,
            vibrate=tuple(settings.vibrate),
            data={"date_of_arrival": format_rfc3339(utc_now()), "primary_key": 1},
            actions=(
                NotificationAction(action=VIEW_ACTION, title="View Deal", icon=settings.action_icon),
                NotificationAction(action=DISMISS_ACTION, title="Close", icon=settings.action_icon),
            ),
        )
        return await self._notifications.show(notification)

    async def _on_notification_click(self, event: NotificationClickEvent) -> Optional[Client]:
        self._notifications.close(event.notification_tag)
        if event.action not in ("", VIEW_ACTION):
            return None

        root_url = normalize_url("/", self._origin)
        for client in self._clients.match_all():
            if normalize_url(client.url, self._origin) == root_url:
                return await self._clients.focus(client)
        return await self._clients.open_window(root_url, controller_version=self.version)

    async def _on_message(self, event: MessageEvent) -> Any:
        message = event.message
        if isinstance(message, SkipWaitingMessage):
            await self.skip_waiting()
            return True
        if isinstance(message, CacheUrlsMessage):
            urls = [normalize_url(url, self._origin) for url in message.urls]
            await self._storage.generation(self.keys.dynamic_key).add_all(urls, self._fetcher)
            logger.info("Cached URLs on request. cache=%s count=%d", self.keys.dynamic_key, len(urls))
            return len(urls)
        if isinstance(message, StorePendingMessage):
            await self._pending.save(message.payload)
            return True
        logger.warning("Ignoring unknown worker message. data=%r", message.data)
        return False

    def _on_error(self, event: ErrorEvent) -> None:
        label = "Service worker unhandled rejection" if event.rejection else "Service worker error"
        error = event.error
        logger.error("%s. error=%s", label, error, exc_info=(type(error), error, error.__traceback__))
