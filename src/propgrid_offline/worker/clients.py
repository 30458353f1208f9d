from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Client:
    id: str
    url: str
    controller_version: Optional[str] = None
    focused: bool = False


class Clients:
    """Open pages within the worker's scope, and which worker version controls each."""

    def __init__(self) -> None:
        self._clients: Dict[str, Client] = {}

    def add(self, url: str, *, controller_version: Optional[str] = None) -> Client:
        client = Client(id=uuid.uuid4().hex, url=url, controller_version=controller_version)
        self._clients[client.id] = client
        return client

    def get(self, client_id: str) -> Optional[Client]:
        return self._clients.get(client_id)

    def match_all(self) -> List[Client]:
        return list(self._clients.values())

    async def claim(self, version: str) -> int:
        """Make ``version`` the controller of every open client; returns how many changed hands."""
        claimed = 0
        for client in self._clients.values():
            if client.controller_version != version:
                client.controller_version = version
                claimed += 1
        logger.info("Clients claimed. version=%s claimed=%d total=%d", version, claimed, len(self._clients))
        return claimed

    async def focus(self, client: Client) -> Client:
        for other in self._clients.values():
            other.focused = other.id == client.id
        return client

    async def open_window(self, url: str, *, controller_version: Optional[str] = None) -> Client:
        client = self.add(url, controller_version=controller_version)
        logger.info("Window opened. url=%s client_id=%s", url, client.id)
        return await self.focus(client)
