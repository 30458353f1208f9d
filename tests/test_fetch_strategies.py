import tempfile
import unittest

from fakes import ORIGIN, FakeFetcher, make_config, serve_manifest

from propgrid_offline.core.errors import NetworkError
from propgrid_offline.core.models import Request, Response
from propgrid_offline.runtime import build_runtime
from propgrid_offline.worker.events import FetchEvent

TAILWIND = "https://cdn.tailwindcss.com/"
FONT_AWESOME = "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css"


class FetchStrategyTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.config = make_config(tmp.name)
        self.fetcher = FakeFetcher()
        self.runtime = build_runtime(self.config, fetcher=self.fetcher)
        self.worker = self.runtime.new_worker()

    async def fetch(self, url: str, **kwargs) -> Response:
        return await self.worker.dispatch(FetchEvent(request=Request(url=url, **kwargs)))

    async def test_same_origin_response_is_served_from_cache_when_offline(self) -> None:
        self.fetcher.add(f"{ORIGIN}/listings", "<ul>listings</ul>", content_type="text/html")

        online = await self.fetch("/listings")
        self.fetcher.offline = True
        offline = await self.fetch("/listings")

        self.assertEqual(online.text(), "<ul>listings</ul>")
        self.assertEqual(offline.status, 200)
        self.assertEqual(offline.text(), "<ul>listings</ul>")
        self.assertEqual(offline.content_type, "text/html")

    async def test_network_first_prefers_fresh_response(self) -> None:
        self.fetcher.add(f"{ORIGIN}/script.js", "v1")
        await self.fetch("/script.js")
        self.fetcher.add(f"{ORIGIN}/script.js", "v2")

        response = await self.fetch("/script.js")

        self.assertEqual(response.text(), "v2")
        cached = await self.runtime.storage.generation("propgrid-dynamic-v1.0.0").match(f"{ORIGIN}/script.js")
        self.assertEqual(cached.text(), "v2")

    async def test_non_ok_same_origin_response_is_not_cached(self) -> None:
        self.fetcher.add(f"{ORIGIN}/broken", "oops", status=500)

        response = await self.fetch("/broken")

        self.assertEqual(response.status, 500)
        self.assertFalse(await self.runtime.storage.has("propgrid-dynamic-v1.0.0"))

    async def test_offline_without_cache_serves_offline_document(self) -> None:
        self.fetcher.offline = True

        response = await self.fetch("/never-seen", mode="navigate")

        self.assertEqual(response.status, 200)
        self.assertEqual(response.text(), self.config.cache.offline_document)
        self.assertIn("text/html", response.content_type)

    async def test_cached_offline_page_takes_precedence_over_built_in(self) -> None:
        static = await self.runtime.storage.open("propgrid-static-v1.0.0")
        await static.put(f"{ORIGIN}/offline.html", Response.synthetic("<p>custom offline</p>"))
        self.fetcher.offline = True

        response = await self.fetch("/anything")

        self.assertEqual(response.text(), "<p>custom offline</p>")

    async def test_precached_page_is_available_offline(self) -> None:
        serve_manifest(self.fetcher, self.config)
        await self.runtime.registration.register(self.worker)
        self.fetcher.offline = True

        response = await self.fetch(f"{ORIGIN}/index.html")

        self.assertEqual(response.text(), f"content of {ORIGIN}/index.html")

    async def test_cached_cdn_resource_never_reaches_network(self) -> None:
        static = await self.runtime.storage.open("propgrid-static-v1.0.0")
        await static.put(FONT_AWESOME, Response.synthetic("/* fa */", content_type="text/css"))

        response = await self.fetch(FONT_AWESOME)

        self.assertEqual(response.text(), "/* fa */")
        self.assertEqual(self.fetcher.calls, [])

    async def test_cdn_miss_is_fetched_and_stored_in_static_generation(self) -> None:
        self.fetcher.add(FONT_AWESOME, "/* fa */", content_type="text/css")

        await self.fetch(FONT_AWESOME)
        await self.fetch(FONT_AWESOME)

        self.assertEqual(len(self.fetcher.calls_for(FONT_AWESOME)), 1)
        static = self.runtime.storage.generation("propgrid-static-v1.0.0")
        self.assertEqual(await static.keys(), [FONT_AWESOME])

    async def test_tailwind_failure_returns_placeholder_stylesheet(self) -> None:
        self.fetcher.offline = True

        response = await self.fetch("https://cdn.tailwindcss.com")

        self.assertEqual(response.status, 200)
        self.assertEqual(response.content_type, "text/css")
        self.assertEqual(response.text(), "/* Tailwind CSS fallback */")
        self.assertEqual(len(self.fetcher.calls_for(TAILWIND)), 1)

    async def test_other_cdn_failure_propagates(self) -> None:
        self.fetcher.offline = True

        with self.assertRaises(NetworkError):
            await self.fetch(FONT_AWESOME)

    async def test_unknown_external_failure_becomes_503(self) -> None:
        self.fetcher.offline = True

        response = await self.fetch("https://maps.example.com/tiles/1.png")

        self.assertEqual(response.status, 503)
        self.assertEqual(response.reason, "Service Unavailable")
        self.assertEqual(response.text(), "Offline")

    async def test_unknown_external_success_is_not_cached(self) -> None:
        self.fetcher.add("https://maps.example.com/tiles/1.png", "png")

        response = await self.fetch("https://maps.example.com/tiles/1.png")

        self.assertEqual(response.text(), "png")
        self.assertEqual(await self.runtime.storage.keys(), [])

    async def test_non_get_requests_are_not_intercepted(self) -> None:
        response = await self.fetch(f"{ORIGIN}/api/signup", method="POST", body=b"{}")

        self.assertIsNone(response)
        self.assertEqual(self.fetcher.calls, [])


class RegistrationFetchTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.config = make_config(tmp.name)
        self.fetcher = FakeFetcher()
        serve_manifest(self.fetcher, self.config)
        self.runtime = build_runtime(self.config, fetcher=self.fetcher)
        await self.runtime.registration.register(self.runtime.new_worker())

    async def test_passthrough_requests_go_to_network(self) -> None:
        self.fetcher.add(f"{ORIGIN}/api/signup", '{"ok": true}', status=201)

        response = await self.runtime.registration.fetch(
            Request.post_json(f"{ORIGIN}/api/signup", {"email": "a@b.c"})
        )

        self.assertEqual(response.status, 201)
        self.assertEqual(len(self.fetcher.calls_for(f"{ORIGIN}/api/signup", "POST")), 1)

    async def test_uncontrolled_client_bypasses_worker(self) -> None:
        client = self.runtime.clients.add(f"{ORIGIN}/")
        client.controller_version = None
        self.fetcher.offline = True

        with self.assertRaises(NetworkError):
            await self.runtime.registration.fetch(Request.get(f"{ORIGIN}/index.html"), client_id=client.id)

        response = await self.runtime.registration.fetch(
            Request.get(f"{ORIGIN}/index.html", mode="navigate"),
            client_id=client.id,
        )
        self.assertEqual(response.text(), f"content of {ORIGIN}/index.html")


if __name__ == "__main__":
    unittest.main()
