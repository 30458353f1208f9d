from __future__ import annotations


class OfflineCacheError(Exception):
    """Base class for errors raised by the offline cache manager."""


class NetworkError(OfflineCacheError):
    """A request could not be completed over the network."""

    def __init__(self, url: str, message: str = "") -> None:
        self.url = url
        super().__init__(f"Network request failed. url={url} {message}".strip())


class CacheStorageError(OfflineCacheError):
    """Reading or writing a cache generation failed."""


class InstallError(OfflineCacheError):
    """The precache manifest could not be stored; the worker version must not activate."""
