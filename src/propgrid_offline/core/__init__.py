from propgrid_offline.core.errors import CacheStorageError, InstallError, NetworkError, OfflineCacheError
from propgrid_offline.core.models import Request, Response

__all__ = [
    "CacheStorageError",
    "InstallError",
    "NetworkError",
    "OfflineCacheError",
    "Request",
    "Response",
]
