from propgrid_offline.net.fetcher import NetworkFetcher
from propgrid_offline.net.interfaces import Fetcher

__all__ = ["Fetcher", "NetworkFetcher"]
