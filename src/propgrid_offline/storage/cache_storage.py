from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from propgrid_offline.core.errors import CacheStorageError
from propgrid_offline.core.models import Request, Response
from propgrid_offline.core.utils import format_rfc3339, hash_url, utc_now
from propgrid_offline.net.interfaces import Fetcher
from propgrid_offline.storage.cache_io import (
    atomic_write_json,
    decode_entry,
    decode_index,
    encode_entry,
    encode_index,
    read_json,
)
from propgrid_offline.storage.models import CacheEntry, GenerationRecord, SchemaVersion, StorageIndex

logger = logging.getLogger(__name__)

INDEX_FILENAME = "generations.json"


class CacheGeneration:
    """
    A named bucket of URL -> response entries.

    Keys are expected to be absolute URLs; callers normalize them before use.
    Each write replaces the entry file atomically, so a concurrent reader sees either
    the old or the new response.
    """

    def __init__(self, storage: CacheStorage, name: str) -> None:
        self._storage = storage
        self.name = name

    def __repr__(self) -> str:
        return f"CacheGeneration(name={self.name!r})"

    async def match(self, url: str) -> Optional[Response]:
        directory = await self._storage._find_directory(self.name)
        if directory is None:
            return None
        entry = self._read_entry(directory / f"{hash_url(url)}.json")
        if entry is None or entry.url != url:
            return None
        return entry.response.clone()

    async def put(self, url: str, response: Response) -> None:
        directory = await self._storage._ensure_directory(self.name)
        entry = CacheEntry(url=url, response=response.clone(), stored_at=format_rfc3339(utc_now()))
        entry.response.url = url
        try:
            atomic_write_json(directory / f"{hash_url(url)}.json", encode_entry(entry))
        except OSError as e:
            raise CacheStorageError(f"Failed to store cache entry. cache={self.name} url={url}") from e
        logger.debug("Cache entry stored. cache=%s url=%s status=%s", self.name, url, response.status)

    async def delete(self, url: str) -> bool:
        directory = await self._storage._find_directory(self.name)
        if directory is None:
            return False
        path = directory / f"{hash_url(url)}.json"
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheStorageError(f"Failed to delete cache entry. cache={self.name} url={url}") from e
        logger.debug("Cache entry deleted. cache=%s url=%s", self.name, url)
        return True

    async def keys(self) -> List[str]:
        directory = await self._storage._find_directory(self.name)
        if directory is None:
            return []
        urls = []
        for path in sorted(directory.glob("*.json")):
            entry = self._read_entry(path)
            if entry is not None:
                urls.append(entry.url)
        return sorted(urls)

    async def add_all(self, urls: Iterable[str], fetcher: Fetcher) -> None:
        """
        Fetch every URL and store the responses, or store nothing.

        Raises NetworkError when a fetch fails and CacheStorageError when a response
        is not 2xx. Nothing is written unless every response was fetched successfully.
        """

        url_list = list(dict.fromkeys(urls))
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(fetcher.fetch(Request.get(url))) for url in url_list]
        except ExceptionGroup as e:
            # The first failure cancels the remaining fetches.
            raise e.exceptions[0] from None
        responses = [task.result() for task in tasks]
        for url, response in zip(url_list, responses):
            if not response.ok:
                raise CacheStorageError(
                    f"Refusing to cache a non-2xx response. cache={self.name} url={url} status={response.status}"
                )
        for url, response in zip(url_list, responses):
            await self.put(url, response)

    def _read_entry(self, path: Path) -> Optional[CacheEntry]:
        if not path.exists():
            return None
        try:
            return decode_entry(read_json(path))
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable cache entry. cache=%s path=%s", self.name, path, exc_info=True)
            return None


class CacheStorage:
    """
    Disk-backed registry of cache generations.

    Generation names and creation order live in ``generations.json``; each generation
    owns one directory with one JSON file per entry.
    """

    def __init__(self, root_dir: str | Path) -> None:
        self._root = Path(root_dir)
        self._lock = asyncio.Lock()

    async def keys(self) -> List[str]:
        async with self._lock:
            return [record.name for record in self._load_index().generations]

    async def has(self, name: str) -> bool:
        return name in await self.keys()

    def generation(self, name: str) -> CacheGeneration:
        """Handle to ``name`` without creating it; the first write creates it."""
        return CacheGeneration(self, name)

    async def open(self, name: str) -> CacheGeneration:
        await self._ensure_directory(name)
        return CacheGeneration(self, name)

    async def delete(self, name: str) -> bool:
        async with self._lock:
            index = self._load_index()
            record = next((r for r in index.generations if r.name == name), None)
            if record is None:
                return False
            index.generations = [r for r in index.generations if r.name != name]
            self._write_index(index)
            shutil.rmtree(self._root / record.directory, ignore_errors=True)
        logger.info("Cache generation deleted. cache=%s", name)
        return True

    async def match(self, url: str, *, generations: Optional[Sequence[str]] = None) -> Optional[Response]:
        """Return the first stored response for ``url``, searching generations in creation order."""
        names = list(generations) if generations is not None else await self.keys()
        for name in names:
            response = await self.generation(name).match(url)
            if response is not None:
                return response
        return None

    async def _find_directory(self, name: str) -> Optional[Path]:
        async with self._lock:
            record = next((r for r in self._load_index().generations if r.name == name), None)
            if record is None:
                return None
            return self._root / record.directory

    async def _ensure_directory(self, name: str) -> Path:
        async with self._lock:
            index = self._load_index()
            record = next((r for r in index.generations if r.name == name), None)
            if record is None:
                record = GenerationRecord(
                    name=name,
                    directory=hash_url(name)[:32],
                    created_at=format_rfc3339(utc_now()),
                )
                index.generations.append(record)
                self._write_index(index)
                logger.info("Cache generation created. cache=%s", name)
            directory = self._root / record.directory
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CacheStorageError(f"Failed to create cache generation. cache={name}") from e
            return directory

    def _load_index(self) -> StorageIndex:
        index_path = self._root / INDEX_FILENAME
        if not index_path.exists():
            return StorageIndex(schema_version=SchemaVersion, generations=[])
        try:
            index = decode_index(read_json(index_path))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CacheStorageError(f"Cache storage index is unreadable. path={index_path}") from e
        if index.schema_version != SchemaVersion:
            logger.warning(
                "Cache storage schema mismatch. expected=%s actual=%s",
                SchemaVersion,
                index.schema_version,
            )
            return StorageIndex(schema_version=SchemaVersion, generations=[])
        return index

    def _write_index(self, index: StorageIndex) -> None:
        try:
            atomic_write_json(self._root / INDEX_FILENAME, encode_index(index))
        except OSError as e:
            raise CacheStorageError(f"Failed to write cache storage index. root={self._root}") from e
