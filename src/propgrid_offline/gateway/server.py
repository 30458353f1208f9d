from __future__ import annotations

import json
import logging
from typing import Dict, Optional

from aiohttp import web

from propgrid_offline.core.errors import NetworkError
from propgrid_offline.core.models import Request, RequestMode, Response
from propgrid_offline.core.utils import normalize_url
from propgrid_offline.storage.cache_storage import CacheStorage
from propgrid_offline.worker.manager import EventOutcome
from propgrid_offline.worker.registration import WorkerRegistration

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = "X-Client-Id"

_HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-length",
        "host",
        "keep-alive",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

REGISTRATION_KEY = web.AppKey("registration", WorkerRegistration)
STORAGE_KEY = web.AppKey("storage", CacheStorage)
ORIGIN_KEY = web.AppKey("origin", str)


def _forward_headers(headers) -> Dict[str, str]:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in _HOP_BY_HOP_HEADERS and name != CLIENT_ID_HEADER
    }


def _request_mode(request: web.Request) -> RequestMode:
    fetch_mode = request.headers.get("Sec-Fetch-Mode", "")
    if fetch_mode == "navigate":
        return "navigate"
    if request.method == "GET" and "text/html" in request.headers.get("Accept", ""):
        return "navigate"
    return "cors"


def _to_web_response(response: Response) -> web.Response:
    headers = {
        name: value for name, value in response.headers.items() if name.lower() not in _HOP_BY_HOP_HEADERS
    }
    return web.Response(status=response.status, reason=response.reason or None, headers=headers, body=response.body)


def _outcome_payload(outcome: EventOutcome) -> dict:
    payload: dict = {"ok": outcome.ok}
    if outcome.error is not None:
        payload["error"] = str(outcome.error)
    return payload


async def _read_json(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except json.JSONDecodeError as e:
        raise web.HTTPBadRequest(text=f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return data


async def _resolve(request: web.Request, url: str) -> web.StreamResponse:
    registration = request.app[REGISTRATION_KEY]
    body: Optional[bytes] = await request.read() if request.can_read_body else None
    outgoing = Request(
        url=url,
        method=request.method,
        headers=_forward_headers(request.headers),
        body=body,
        mode=_request_mode(request),
    )
    try:
        response = await registration.fetch(outgoing, client_id=request.headers.get(CLIENT_ID_HEADER))
    except NetworkError as e:
        logger.warning("Gateway could not resolve request. method=%s url=%s", request.method, url)
        raise web.HTTPBadGateway(text=str(e)) from e
    return _to_web_response(response)


async def handle_same_origin(request: web.Request) -> web.StreamResponse:
    url = normalize_url(request.rel_url.path_qs, request.app[ORIGIN_KEY])
    return await _resolve(request, url)


async def handle_external(request: web.Request) -> web.StreamResponse:
    url = request.query.get("url", "").strip()
    if not url.startswith(("http://", "https://")):
        raise web.HTTPBadRequest(text="Query parameter 'url' must be an absolute http(s) URL")
    return await _resolve(request, url)


async def handle_message(request: web.Request) -> web.Response:
    data = await _read_json(request)
    outcome = await request.app[REGISTRATION_KEY].post_message(data, client_id=request.headers.get(CLIENT_ID_HEADER))
    return web.json_response(_outcome_payload(outcome))


async def handle_sync(request: web.Request) -> web.Response:
    data = await _read_json(request)
    tag = str(data.get("tag", ""))
    outcome = await request.app[REGISTRATION_KEY].sync(tag)
    payload = _outcome_payload(outcome)
    payload["delivered"] = bool(outcome.value)
    return web.json_response(payload)


async def handle_push(request: web.Request) -> web.Response:
    text = await request.text() if request.can_read_body else ""
    outcome = await request.app[REGISTRATION_KEY].push(text or None)
    payload = _outcome_payload(outcome)
    if outcome.ok and outcome.value is not None:
        payload["tag"] = outcome.value.tag
    return web.json_response(payload)


async def handle_notification_click(request: web.Request) -> web.Response:
    data = await _read_json(request)
    outcome = await request.app[REGISTRATION_KEY].notification_click(
        str(data.get("tag", "")),
        str(data.get("action", "")),
    )
    payload = _outcome_payload(outcome)
    if outcome.ok and outcome.value is not None:
        payload["client"] = {"id": outcome.value.id, "url": outcome.value.url}
    return web.json_response(payload)


async def handle_caches(request: web.Request) -> web.Response:
    storage = request.app[STORAGE_KEY]
    caches = {}
    for name in await storage.keys():
        caches[name] = await storage.generation(name).keys()
    return web.json_response({"caches": caches})


async def handle_state(request: web.Request) -> web.Response:
    registration = request.app[REGISTRATION_KEY]

    def describe(worker) -> Optional[dict]:
        if worker is None:
            return None
        return {"version": worker.version, "state": worker.state.value}

    return web.json_response(
        {
            "active": describe(registration.active),
            "waiting": describe(registration.waiting),
            "clients": len(registration.clients.match_all()),
        }
    )


def create_app(*, registration: WorkerRegistration, storage: CacheStorage, origin: str) -> web.Application:
    app = web.Application()
    app[REGISTRATION_KEY] = registration
    app[STORAGE_KEY] = storage
    app[ORIGIN_KEY] = origin
    app.router.add_get("/__worker/caches", handle_caches)
    app.router.add_get("/__worker/state", handle_state)
    app.router.add_post("/__worker/message", handle_message)
    app.router.add_post("/__worker/sync", handle_sync)
    app.router.add_post("/__worker/push", handle_push)
    app.router.add_post("/__worker/notificationclick", handle_notification_click)
    app.router.add_route("*", "/__fetch", handle_external)
    app.router.add_route("*", "/{tail:.*}", handle_same_origin)
    return app
