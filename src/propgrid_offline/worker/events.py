from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from propgrid_offline.core.models import Request

SKIP_WAITING = "SKIP_WAITING"
CACHE_URLS = "CACHE_URLS"
STORE_PENDING = "STORE_PENDING"


@dataclass(frozen=True, slots=True)
class InstallEvent:
    pass


@dataclass(frozen=True, slots=True)
class ActivateEvent:
    pass


@dataclass(frozen=True, slots=True)
class FetchEvent:
    request: Request
    client_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SyncEvent:
    tag: str


@dataclass(frozen=True, slots=True)
class PushEvent:
    data: Optional[str] = None


@dataclass(frozen=True, slots=True)
class NotificationClickEvent:
    notification_tag: str
    action: str = ""


@dataclass(frozen=True, slots=True)
class SkipWaitingMessage:
    pass


@dataclass(frozen=True, slots=True)
class CacheUrlsMessage:
    urls: Sequence[str] = ()


@dataclass(frozen=True, slots=True)
class StorePendingMessage:
    payload: Any = None


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    data: Any = None


Message = Union[SkipWaitingMessage, CacheUrlsMessage, StorePendingMessage, UnknownMessage]


@dataclass(frozen=True, slots=True)
class MessageEvent:
    message: Message
    source_client_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """An uncaught error or unhandled rejection reported by the runtime."""

    error: BaseException
    rejection: bool = False


WorkerEvent = Union[
    InstallEvent,
    ActivateEvent,
    FetchEvent,
    SyncEvent,
    PushEvent,
    NotificationClickEvent,
    MessageEvent,
    ErrorEvent,
]


def parse_message(data: Any) -> Message:
    """Map a raw ``{"type": ...}`` message posted by a page to a message variant."""
    if not isinstance(data, dict):
        return UnknownMessage(data=data)
    kind = data.get("type")
    if kind == SKIP_WAITING:
        return SkipWaitingMessage()
    if kind == CACHE_URLS:
        urls = data.get("urls") or []
        if not isinstance(urls, list) or not all(isinstance(url, str) for url in urls):
            return UnknownMessage(data=data)
        return CacheUrlsMessage(urls=tuple(urls))
    if kind == STORE_PENDING:
        return StorePendingMessage(payload=data.get("payload"))
    return UnknownMessage(data=data)
