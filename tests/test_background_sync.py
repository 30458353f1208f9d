import json
import tempfile
import unittest

from fakes import ORIGIN, FakeFetcher, make_config, serve_manifest

from propgrid_offline.runtime import build_runtime

SIGNUP = f"{ORIGIN}/api/signup"
SUBMISSION = {"name": "Dana", "email": "dana@example.com", "markets": ["Austin"]}


class BackgroundSyncTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.config = make_config(tmp.name)
        self.fetcher = FakeFetcher()
        serve_manifest(self.fetcher, self.config)
        self.runtime = build_runtime(self.config, fetcher=self.fetcher)
        self.worker = self.runtime.new_worker()
        await self.runtime.registration.register(self.worker)
        await self.worker.pending.save(SUBMISSION)

    async def test_successful_replay_clears_pending_submission(self) -> None:
        self.fetcher.add(SIGNUP, '{"ok": true}', status=200, content_type="application/json")

        outcome = await self.runtime.registration.sync("background-sync")

        self.assertTrue(outcome.ok)
        self.assertTrue(outcome.value)
        self.assertIsNone(await self.worker.pending.load())
        posts = self.fetcher.calls_for(SIGNUP, "POST")
        self.assertEqual(len(posts), 1)
        self.assertEqual(json.loads(posts[0].body), SUBMISSION)
        self.assertEqual(posts[0].headers["Content-Type"], "application/json")

    async def test_rejected_replay_keeps_submission_for_next_signal(self) -> None:
        self.fetcher.add(SIGNUP, "busy", status=503)

        outcome = await self.runtime.registration.sync("background-sync")

        self.assertTrue(outcome.ok)
        self.assertFalse(outcome.value)
        self.assertEqual(await self.worker.pending.load(), SUBMISSION)

        self.fetcher.add(SIGNUP, '{"ok": true}', status=201)
        outcome = await self.runtime.registration.sync("background-sync")

        self.assertTrue(outcome.value)
        self.assertIsNone(await self.worker.pending.load())
        self.assertEqual(len(self.fetcher.calls_for(SIGNUP, "POST")), 2)

    async def test_network_failure_keeps_submission(self) -> None:
        self.fetcher.offline = True

        with self.assertLogs("propgrid_offline.worker.manager", level="ERROR"):
            outcome = await self.runtime.registration.sync("background-sync")

        self.assertTrue(outcome.ok)
        self.assertFalse(outcome.value)
        self.assertEqual(await self.worker.pending.load(), SUBMISSION)

    async def test_other_sync_tags_are_ignored(self) -> None:
        outcome = await self.runtime.registration.sync("analytics-sync")

        self.assertFalse(outcome.value)
        self.assertEqual(self.fetcher.calls_for(SIGNUP), [])
        self.assertEqual(await self.worker.pending.load(), SUBMISSION)

    async def test_sync_without_pending_submission_sends_nothing(self) -> None:
        await self.worker.pending.clear()

        outcome = await self.runtime.registration.sync("background-sync")

        self.assertFalse(outcome.value)
        self.assertEqual(self.fetcher.calls_for(SIGNUP), [])


if __name__ == "__main__":
    unittest.main()
