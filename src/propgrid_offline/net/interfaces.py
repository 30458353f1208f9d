from __future__ import annotations

from propgrid_offline.core.models import Request, Response


class Fetcher:
    async def fetch(self, request: Request) -> Response:
        """
        Perform ``request`` over the network.

        Any HTTP status is a successful fetch and is returned as a Response.
        Raises NetworkError when no response could be obtained at all.
        """
        raise NotImplementedError
