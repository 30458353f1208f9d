import asyncio
import tempfile
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

from propgrid_offline.config.models import AppConfig, NetworkSettings
from propgrid_offline.core.errors import NetworkError
from propgrid_offline.core.models import Request
from propgrid_offline.net.fetcher import NetworkFetcher
from propgrid_offline.runtime import build_runtime
from propgrid_offline.worker.manager import WorkerState

LONG_BODY = "<p>deal</p>" * 500


async def _home(request: web.Request) -> web.Response:
    return web.Response(text="<h1>home</h1>", content_type="text/html")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(0.3)
    return web.Response(text="<h1>slow</h1>", content_type="text/html")


async def _stalled(request: web.Request) -> web.Response:
    await asyncio.sleep(1.0)
    return web.Response(text="too late")


async def _compressed(request: web.Request) -> web.Response:
    response = web.Response(text=LONG_BODY, content_type="text/html")
    response.enable_compression()
    return response


async def _echo(request: web.Request) -> web.Response:
    return web.json_response({"method": request.method, "body": await request.json()}, status=201)


class NetworkFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        app = web.Application()
        app.router.add_get("/", _home)
        app.router.add_get("/index.html", _slow)
        app.router.add_get("/script.js", _home)
        app.router.add_get("/stalled", _stalled)
        app.router.add_get("/compressed", _compressed)
        app.router.add_post("/api/signup", _echo)
        self.server = TestServer(app)
        await self.server.start_server()
        self.addAsyncCleanup(self.server.close)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    async def test_concurrent_fetches_share_an_auto_started_session(self) -> None:
        fetcher = NetworkFetcher(NetworkSettings())

        fast, slow = await asyncio.gather(
            fetcher.fetch(Request.get(self.url("/"))),
            fetcher.fetch(Request.get(self.url("/index.html"))),
        )

        self.assertEqual(fast.text(), "<h1>home</h1>")
        self.assertEqual(slow.text(), "<h1>slow</h1>")
        self.assertFalse(fetcher.started)

    async def test_started_fetcher_keeps_its_session_open(self) -> None:
        async with NetworkFetcher(NetworkSettings()) as fetcher:
            await fetcher.fetch(Request.get(self.url("/")))
            self.assertTrue(fetcher.started)
        self.assertFalse(fetcher.started)

    async def test_decoded_body_drops_framing_headers(self) -> None:
        async with NetworkFetcher(NetworkSettings()) as fetcher:
            response = await fetcher.fetch(Request.get(self.url("/compressed")))

        self.assertEqual(response.text(), LONG_BODY)
        self.assertEqual(response.content_type, "text/html")
        lowered = {name.lower() for name in response.headers}
        self.assertNotIn("content-encoding", lowered)
        self.assertNotIn("content-length", lowered)

    async def test_post_json_round_trips_status_and_body(self) -> None:
        async with NetworkFetcher(NetworkSettings()) as fetcher:
            response = await fetcher.fetch(Request.post_json(self.url("/api/signup"), {"email": "a@example.com"}))

        self.assertEqual(response.status, 201)
        self.assertEqual(response.json(), {"method": "POST", "body": {"email": "a@example.com"}})

    async def test_timeout_becomes_network_error(self) -> None:
        url = self.url("/stalled")
        async with NetworkFetcher(NetworkSettings(timeout_seconds=0.1)) as fetcher:
            with self.assertRaises(NetworkError) as ctx:
                await fetcher.fetch(Request.get(url))

        self.assertEqual(ctx.exception.url, url)
        self.assertIn("timeout", str(ctx.exception))

    async def test_connection_failure_becomes_network_error(self) -> None:
        other = TestServer(web.Application())
        await other.start_server()
        url = str(other.make_url("/"))
        await other.close()

        fetcher = NetworkFetcher(NetworkSettings(timeout_seconds=2.0))
        with self.assertRaises(NetworkError) as ctx:
            await fetcher.fetch(Request.get(url))

        self.assertEqual(ctx.exception.url, url)
        self.assertFalse(fetcher.started)

    async def test_runtime_installs_manifest_from_live_origin(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        config = AppConfig.model_validate(
            {
                "app": {"origin": self.url("/").rstrip("/")},
                "cache": {"storage_dir": tmp.name, "precache_urls": ["/", "/index.html", "/script.js"]},
            }
        )

        async with build_runtime(config) as runtime:
            self.assertTrue(runtime.fetcher.started)
            state = await runtime.registration.register(runtime.new_worker())
            cached = await runtime.storage.generation("propgrid-static-v1.0.0").keys()

        self.assertIs(state, WorkerState.ACTIVATED)
        self.assertEqual(cached, sorted([self.url("/"), self.url("/index.html"), self.url("/script.js")]))
        self.assertFalse(runtime.fetcher.started)


if __name__ == "__main__":
    unittest.main()
