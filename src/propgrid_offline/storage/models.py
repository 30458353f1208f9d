from __future__ import annotations

from dataclasses import dataclass
from typing import List

from propgrid_offline.config.models import CacheSettings
from propgrid_offline.core.models import Response

SchemaVersion = 1


@dataclass(frozen=True, slots=True)
class GenerationKeys:
    """Names of the two cache generations owned by one worker version."""

    static_key: str
    dynamic_key: str

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> GenerationKeys:
        return cls(
            static_key=f"{settings.prefix}-static-v{settings.version}",
            dynamic_key=f"{settings.prefix}-dynamic-v{settings.version}",
        )

    def as_set(self) -> frozenset[str]:
        return frozenset((self.static_key, self.dynamic_key))


@dataclass(slots=True)
class CacheEntry:
    url: str
    response: Response
    stored_at: str


@dataclass(slots=True)
class GenerationRecord:
    name: str
    directory: str
    created_at: str


@dataclass(slots=True)
class StorageIndex:
    schema_version: int
    generations: List[GenerationRecord]
