"""Offline cache manager: lifecycle events, request routing and the hosting registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from propgrid_offline.worker.clients import Client, Clients
from propgrid_offline.worker.notifications import Notification, NotificationCenter
from propgrid_offline.worker.policy import FetchPlan, Fallback, Strategy, generations_to_delete, route_request

if TYPE_CHECKING:
    from propgrid_offline.worker.manager import EventOutcome, OfflineCacheManager, WorkerState
    from propgrid_offline.worker.registration import WorkerRegistration

__all__ = [
    "Client",
    "Clients",
    "EventOutcome",
    "Fallback",
    "FetchPlan",
    "Notification",
    "NotificationCenter",
    "OfflineCacheManager",
    "Strategy",
    "WorkerRegistration",
    "WorkerState",
    "generations_to_delete",
    "route_request",
]


def __getattr__(name: str):
    if name in ("EventOutcome", "OfflineCacheManager", "WorkerState"):
        from propgrid_offline.worker import manager

        return getattr(manager, name)
    if name == "WorkerRegistration":
        from propgrid_offline.worker.registration import WorkerRegistration as _WorkerRegistration

        return _WorkerRegistration
    raise AttributeError(name)
