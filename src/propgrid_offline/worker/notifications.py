from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationAction:
    action: str
    title: str
    icon: str = ""


@dataclass(slots=True)
class Notification:
    title: str
    body: str
    icon: str = ""
    badge: str = ""
    vibrate: Sequence[int] = ()
    data: Dict[str, Any] = field(default_factory=dict)
    actions: Sequence[NotificationAction] = ()
    tag: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False


class NotificationCenter:
    """Notifications currently shown to the user."""

    def __init__(self) -> None:
        self._shown: Dict[str, Notification] = {}

    async def show(self, notification: Notification) -> Notification:
        self._shown[notification.tag] = notification
        logger.info("Notification shown. tag=%s title=%s", notification.tag, notification.title)
        return notification

    def close(self, tag: str) -> None:
        notification = self._shown.pop(tag, None)
        if notification is not None:
            notification.closed = True

    def visible(self) -> List[Notification]:
        return list(self._shown.values())
