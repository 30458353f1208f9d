from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from propgrid_offline.config.models import NetworkSettings
from propgrid_offline.core.errors import NetworkError
from propgrid_offline.core.models import Request, Response
from propgrid_offline.net.interfaces import Fetcher

logger = logging.getLogger(__name__)

# aiohttp transparently decodes bodies, so the framing headers no longer describe what we store.
_DROPPED_RESPONSE_HEADERS = frozenset(
    {"connection", "content-encoding", "content-length", "keep-alive", "transfer-encoding"}
)


class NetworkFetcher(Fetcher):
    """
    Fetcher backed by one shared aiohttp.ClientSession.

    Callers normally open it with ``async with`` (or ``start``/``stop``). A fetch on an
    unstarted fetcher opens the session itself and closes it once the last in-flight
    fetch that relied on it has finished.
    """

    def __init__(self, config: NetworkSettings):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._auto_started = False
        self._in_flight = 0

    async def __aenter__(self) -> NetworkFetcher:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    @property
    def started(self) -> bool:
        return self._session is not None and not self._session.closed

    async def start(self) -> None:
        """Open the shared client session."""
        self._auto_started = False
        self._open_session()

    async def stop(self) -> None:
        """Close the shared client session."""
        session, self._session = self._session, None
        self._auto_started = False
        if session is not None:
            await session.close()

    def _open_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def fetch(self, request: Request) -> Response:
        if not self.started:
            self._auto_started = True
        session = self._open_session()
        self._in_flight += 1

        try:
            logger.debug("Network fetch start. method=%s url=%s", request.method, request.url)
            async with session.request(
                request.method,
                request.url,
                headers=request.headers or None,
                data=request.body,
            ) as http_response:
                body = await http_response.read()
                headers = {
                    name: value
                    for name, value in http_response.headers.items()
                    if name.lower() not in _DROPPED_RESPONSE_HEADERS
                }
                response = Response(
                    status=http_response.status,
                    reason=http_response.reason or "",
                    headers=headers,
                    body=body,
                    url=request.url,
                )
            logger.debug("Network fetch done. url=%s status=%s size=%d", request.url, response.status, len(body))
            return response
        except asyncio.TimeoutError as e:
            raise NetworkError(request.url, "error=timeout") from e
        except aiohttp.ClientError as e:
            raise NetworkError(request.url, f"error={e}") from e
        finally:
            self._in_flight -= 1
            if self._auto_started and self._in_flight == 0 and self._session is session:
                await self.stop()
