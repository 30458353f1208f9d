from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from propgrid_offline.core.models import Request, Response
from propgrid_offline.net.interfaces import Fetcher
from propgrid_offline.worker.clients import Clients
from propgrid_offline.worker.events import (
    ActivateEvent,
    ErrorEvent,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    NotificationClickEvent,
    PushEvent,
    SkipWaitingMessage,
    SyncEvent,
    parse_message,
)
from propgrid_offline.worker.manager import EventOutcome, OfflineCacheManager, WorkerState

logger = logging.getLogger(__name__)


class WorkerRegistration:
    """
    Hosts the installing, waiting and active versions of the cache manager.

    A new version is installed, parked as waiting, and promoted to active either when
    no other version serves pages or when it asks to skip waiting. A version whose
    install fails becomes redundant and the active version keeps serving.
    """

    def __init__(self, *, fetcher: Fetcher, clients: Clients) -> None:
        self._fetcher = fetcher
        self._clients = clients
        self._lock = asyncio.Lock()
        self.installing: Optional[OfflineCacheManager] = None
        self.waiting: Optional[OfflineCacheManager] = None
        self.active: Optional[OfflineCacheManager] = None

    @property
    def clients(self) -> Clients:
        return self._clients

    async def register(self, worker: OfflineCacheManager) -> WorkerState:
        return await self.update(worker)

    async def update(self, worker: OfflineCacheManager) -> WorkerState:
        async with self._lock:
            if self.active is not None and self.active.version == worker.version:
                logger.info("Worker version already active. version=%s", worker.version)
                worker.state = WorkerState.REDUNDANT
                return worker.state

            worker.set_skip_waiting_hook(self._on_skip_waiting)
            self.installing = worker
            worker.state = WorkerState.INSTALLING
            outcome: EventOutcome = await worker.dispatch(InstallEvent())
            self.installing = None

            if not outcome.ok:
                worker.state = WorkerState.REDUNDANT
                worker.set_skip_waiting_hook(None)
                logger.error(
                    "Worker install failed; keeping current version. failed=%s active=%s",
                    worker.version,
                    self.active.version if self.active else None,
                )
                return worker.state

            worker.state = WorkerState.INSTALLED
            if self.waiting is not None:
                self._retire(self.waiting)
            self.waiting = worker

            if self.active is None or worker.skip_waiting_requested or not self._has_controlled_clients():
                await self._activate_waiting()
            else:
                logger.info("Worker waiting for controlled clients to close. version=%s", worker.version)
            return worker.state

    async def unregister(self) -> bool:
        async with self._lock:
            if self.active is None and self.waiting is None:
                return False
            for worker in (self.waiting, self.active):
                if worker is not None:
                    self._retire(worker)
            self.waiting = None
            self.active = None
            for client in self._clients.match_all():
                client.controller_version = None
            logger.info("Worker registration removed.")
            return True

    async def fetch(self, request: Request, *, client_id: Optional[str] = None) -> Response:
        """
        Resolve ``request`` the way a page under this registration would see it.

        Navigations always go through the active version; other requests only when the
        issuing client is controlled by it. Requests the worker does not intercept go
        straight to the network.
        """

        worker = self.active
        if worker is not None and self._controls(worker, request, client_id):
            response = await worker.dispatch(FetchEvent(request=request, client_id=client_id))
            if response is not None:
                return response
        return await self._fetcher.fetch(request)

    async def post_message(self, data: Any, *, client_id: Optional[str] = None) -> EventOutcome:
        message = parse_message(data)
        # Skip-waiting is meant for the version that is waiting, not the one serving.
        target = self.waiting if isinstance(message, SkipWaitingMessage) and self.waiting else self.active
        if target is None:
            return EventOutcome(ok=False, error=RuntimeError("No worker to receive the message"))
        return await target.dispatch(MessageEvent(message=message, source_client_id=client_id))

    async def sync(self, tag: str) -> EventOutcome:
        return await self._dispatch_active(SyncEvent(tag=tag))

    async def push(self, data: Optional[str] = None) -> EventOutcome:
        return await self._dispatch_active(PushEvent(data=data))

    async def notification_click(self, notification_tag: str, action: str = "") -> EventOutcome:
        return await self._dispatch_active(NotificationClickEvent(notification_tag=notification_tag, action=action))

    async def report_error(self, error: BaseException, *, rejection: bool = False) -> EventOutcome:
        return await self._dispatch_active(ErrorEvent(error=error, rejection=rejection))

    async def _dispatch_active(self, event) -> EventOutcome:
        if self.active is None:
            return EventOutcome(ok=False, error=RuntimeError("No active worker"))
        return await self.active.dispatch(event)

    def _controls(self, worker: OfflineCacheManager, request: Request, client_id: Optional[str]) -> bool:
        if request.mode == "navigate" or client_id is None:
            return True
        client = self._clients.get(client_id)
        return client is None or client.controller_version == worker.version

    def _has_controlled_clients(self) -> bool:
        return any(client.controller_version is not None for client in self._clients.match_all())

    async def _on_skip_waiting(self, worker: OfflineCacheManager) -> None:
        # During install the lock is already held by update(), which checks the flag itself.
        if worker is not self.waiting:
            return
        async with self._lock:
            if worker is self.waiting:
                await self._activate_waiting()

    async def _activate_waiting(self) -> None:
        worker = self.waiting
        if worker is None:
            return
        self.waiting = None
        previous = self.active
        if previous is not None:
            self._retire(previous)
        self.active = worker
        worker.state = WorkerState.ACTIVATING
        outcome = await worker.dispatch(ActivateEvent())
        if not outcome.ok:
            logger.warning("Worker activate handler failed; version is active anyway. version=%s", worker.version)
        worker.state = WorkerState.ACTIVATED
        logger.info(
            "Worker version active. version=%s previous=%s",
            worker.version,
            previous.version if previous else None,
        )

    @staticmethod
    def _retire(worker: OfflineCacheManager) -> None:
        worker.state = WorkerState.REDUNDANT
        worker.set_skip_waiting_hook(None)
