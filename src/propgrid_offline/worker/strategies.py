from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from propgrid_offline.config.models import CacheSettings
from propgrid_offline.core.errors import CacheStorageError, NetworkError
from propgrid_offline.core.models import Request, Response
from propgrid_offline.core.utils import normalize_url
from propgrid_offline.net.interfaces import Fetcher
from propgrid_offline.storage.cache_storage import CacheStorage
from propgrid_offline.storage.models import GenerationKeys
from propgrid_offline.worker.policy import Fallback, FetchPlan, Strategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkerContext:
    origin: str
    keys: GenerationKeys
    settings: CacheSettings
    storage: CacheStorage
    fetcher: Fetcher


async def execute_plan(plan: FetchPlan, request: Request, ctx: WorkerContext) -> Optional[Response]:
    """Run ``plan``; returns None when the request is not intercepted."""
    if plan.strategy is Strategy.PASSTHROUGH:
        return None
    network_request = replace(request, url=plan.url)
    if plan.strategy is Strategy.NETWORK_FIRST:
        return await network_first(plan, network_request, ctx)
    if plan.strategy is Strategy.CACHE_FIRST:
        return await cache_first(plan, network_request, ctx)
    return await network_only(plan, network_request, ctx)


async def network_first(plan: FetchPlan, request: Request, ctx: WorkerContext) -> Response:
    try:
        response = await ctx.fetcher.fetch(request)
    except NetworkError:
        logger.warning("Network unavailable, falling back to cache. url=%s", plan.url)
        cached = await _match(ctx, plan.url, order=(ctx.keys.dynamic_key, ctx.keys.static_key))
        if cached is not None:
            return cached
        return await offline_document(ctx)

    if response.ok and plan.store_in:
        await _store(ctx, plan.store_in, plan.url, response)
    return response


async def cache_first(plan: FetchPlan, request: Request, ctx: WorkerContext) -> Response:
    try:
        cached = await ctx.storage.match(plan.url, generations=(ctx.keys.static_key, ctx.keys.dynamic_key))
        if cached is not None:
            logger.debug("Cache hit. url=%s", plan.url)
            return cached

        response = await ctx.fetcher.fetch(request)
        if response.ok and plan.store_in:
            await _store(ctx, plan.store_in, plan.url, response)
        return response
    except (NetworkError, CacheStorageError) as e:
        if plan.fallback is Fallback.EMPTY_STYLESHEET:
            logger.warning("CDN stylesheet unavailable, serving placeholder. url=%s", plan.url)
            return Response.synthetic(ctx.settings.fallback_stylesheet_body, content_type="text/css")
        if isinstance(e, NetworkError):
            raise
        raise NetworkError(plan.url, "error=cache storage unavailable") from e


async def network_only(plan: FetchPlan, request: Request, ctx: WorkerContext) -> Response:
    try:
        return await ctx.fetcher.fetch(request)
    except NetworkError:
        logger.warning("External request failed, answering 503. url=%s", plan.url)
        return Response.synthetic(
            "Offline",
            status=503,
            reason="Service Unavailable",
            content_type="text/plain; charset=utf-8",
        )


async def offline_document(ctx: WorkerContext) -> Response:
    offline_url = normalize_url(ctx.settings.offline_url, ctx.origin)
    cached = await _match(ctx, offline_url, order=(ctx.keys.static_key, ctx.keys.dynamic_key))
    if cached is not None:
        return cached
    return Response.synthetic(ctx.settings.offline_document, content_type="text/html; charset=utf-8")


async def _match(ctx: WorkerContext, url: str, *, order: Sequence[str]) -> Optional[Response]:
    try:
        return await ctx.storage.match(url, generations=order)
    except CacheStorageError:
        logger.exception("Cache lookup failed. url=%s", url)
        return None


async def _store(ctx: WorkerContext, cache_name: str, url: str, response: Response) -> None:
    try:
        cache = await ctx.storage.open(cache_name)
        await cache.put(url, response)
    except CacheStorageError:
        logger.exception("Failed to cache network response. cache=%s url=%s", cache_name, url)
