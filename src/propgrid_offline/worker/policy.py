"""
Pure routing decisions for intercepted requests.

Nothing here touches the network or cache storage; the executors in
``propgrid_offline.worker.strategies`` carry out the plans produced here.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from propgrid_offline.config.models import CacheSettings
from propgrid_offline.core.models import Request
from propgrid_offline.core.utils import normalize_url, origin_of
from propgrid_offline.storage.models import GenerationKeys


class Strategy(enum.Enum):
    PASSTHROUGH = "passthrough"
    NETWORK_FIRST = "network-first"
    CACHE_FIRST = "cache-first"
    NETWORK_ONLY = "network-only"


class Fallback(enum.Enum):
    NONE = "none"
    CACHE_THEN_OFFLINE_PAGE = "cache-then-offline-page"
    EMPTY_STYLESHEET = "empty-stylesheet"
    SERVICE_UNAVAILABLE = "service-unavailable"


@dataclass(frozen=True, slots=True)
class FetchPlan:
    strategy: Strategy
    url: str
    # Generation that receives a copy of a successful network response.
    store_in: Optional[str] = None
    fallback: Fallback = Fallback.NONE


def is_cdn_origin(url: str, settings: CacheSettings) -> bool:
    request_origin = origin_of(url)
    return any(host in request_origin for host in settings.cdn_hosts)


def route_request(
    request: Request,
    *,
    origin: str,
    keys: GenerationKeys,
    settings: CacheSettings,
) -> FetchPlan:
    url = normalize_url(request.url, origin)
    if request.method.upper() != "GET":
        return FetchPlan(strategy=Strategy.PASSTHROUGH, url=url)

    if origin_of(url) == origin_of(normalize_url("/", origin)):
        return FetchPlan(
            strategy=Strategy.NETWORK_FIRST,
            url=url,
            store_in=keys.dynamic_key,
            fallback=Fallback.CACHE_THEN_OFFLINE_PAGE,
        )

    if is_cdn_origin(url, settings):
        fallback = Fallback.NONE
        if settings.fallback_stylesheet_host and settings.fallback_stylesheet_host in url:
            fallback = Fallback.EMPTY_STYLESHEET
        return FetchPlan(
            strategy=Strategy.CACHE_FIRST,
            url=url,
            store_in=keys.static_key,
            fallback=fallback,
        )

    return FetchPlan(
        strategy=Strategy.NETWORK_ONLY,
        url=url,
        fallback=Fallback.SERVICE_UNAVAILABLE,
    )


def generations_to_delete(existing: Iterable[str], keys: GenerationKeys) -> set[str]:
    """Every generation name that is neither the current static nor the current dynamic key."""
    current = keys.as_set()
    return {name for name in existing if name not in current}
