import asyncio
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.cache.snapshot_store import FileSnapshotStore, RedisSnapshotStore
from tests.fakes import FakeClock, MemorySnapshotStore


class TestGetOrSet(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = MemorySnapshotStore()
        self.cache = PersistableCache("test", std_ttl=60, store=self.store, clock=self.clock)

    async def test_second_call_returns_first_value_without_generating(self):
        calls = []

        async def generator():
            calls.append(1)
            return f"value-{len(calls)}"

        first = await self.cache.get_or_set("key", generator)
        second = await self.cache.get_or_set("key", generator)

        self.assertEqual(first, "value-1")
        self.assertEqual(second, "value-1")
        self.assertEqual(len(calls), 1)

    async def test_failed_generator_is_not_cached(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return "ok"

        with self.assertRaises(RuntimeError):
            await self.cache.get_or_set("key", flaky)
        self.assertFalse(self.cache.has("key"))

        self.assertEqual(await self.cache.get_or_set("key", flaky), "ok")
        self.assertEqual(len(attempts), 2)

    async def test_none_is_a_cacheable_answer(self):
        calls = []

        async def nothing():
            calls.append(1)
            return None

        self.assertIsNone(await self.cache.get_or_set("key", nothing))
        self.assertIsNone(await self.cache.get_or_set("key", nothing))
        self.assertEqual(len(calls), 1)

    async def test_expired_entry_is_regenerated(self):
        values = iter(["old", "new"])

        async def generator():
            return next(values)

        await self.cache.get_or_set("key", generator)
        self.clock.advance(61)

        self.assertEqual(await self.cache.get_or_set("key", generator), "new")

    async def test_explicit_ttl_overrides_default(self):
        async def generator():
            return "v"

        await self.cache.get_or_set("key", generator, ttl=10)
        self.clock.advance(11)
        self.assertFalse(self.cache.has("key"))

    async def test_concurrent_misses_share_one_generator_call(self):
        calls = []
        release = asyncio.Event()

        async def slow():
            calls.append(1)
            await release.wait()
            return "shared"

        pending = [asyncio.ensure_future(self.cache.get_or_set("key", slow)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*pending)

        self.assertEqual(results, ["shared"] * 3)
        self.assertEqual(len(calls), 1)

    async def test_concurrent_failure_reaches_every_waiter(self):
        release = asyncio.Event()

        async def failing():
            await release.wait()
            raise ValueError("nope")

        pending = [asyncio.ensure_future(self.cache.get_or_set("key", failing)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*pending, return_exceptions=True)

        self.assertTrue(all(isinstance(result, ValueError) for result in results))
        self.assertEqual(self.cache.size(), 0)

    async def test_value_generated_across_a_flush_is_not_stored(self):
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "stale"

        pending = asyncio.ensure_future(self.cache.get_or_set("key", slow))
        await asyncio.sleep(0)
        self.cache.flush_all()
        release.set()

        self.assertEqual(await pending, "stale")
        self.assertFalse(self.cache.has("key"))
        self.assertEqual(await self.cache.get_or_set("key", self._fresh), "fresh")

    async def _fresh(self):
        return "fresh"

    async def test_size_counts_live_entries_only(self):
        self.cache.set("a", 1, ttl=10)
        self.cache.set("b", 2, ttl=100)
        self.clock.advance(50)
        self.assertEqual(self.cache.size(), 1)


class TestPersistence(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = MemorySnapshotStore()

    def _cache(self):
        return PersistableCache("images", std_ttl=100, store=self.store, clock=self.clock)

    async def test_persisted_entries_load_in_a_new_instance(self):
        cache = self._cache()

        async def generator():
            return {"owner_image_url": "https://avatars/1"}

        await cache.get_or_set("https://github.com/acme/widget", generator)
        self.assertEqual(cache.persist(), 1)

        reloaded = self._cache()
        self.assertEqual(reloaded.load(), 1)

        async def must_not_run():
            raise AssertionError("generator should not run for a loaded key")

        value = await reloaded.get_or_set("https://github.com/acme/widget", must_not_run)
        self.assertEqual(value, {"owner_image_url": "https://avatars/1"})

    async def test_expiry_survives_persistence(self):
        cache = self._cache()
        cache.set("key", "v", ttl=30)
        cache.persist()

        self.clock.advance(31)
        reloaded = self._cache()
        self.assertEqual(reloaded.load(), 0)
        self.assertFalse(reloaded.has("key"))

    def test_load_happens_once(self):
        self.store.snapshots["images"] = {
            "version": 1,
            "entries": {"key": {"value": "v", "expires_at": self.clock.now + 10}},
        }
        cache = self._cache()
        cache.load()
        self.store.snapshots["images"]["entries"]["other"] = {"value": "w", "expires_at": self.clock.now + 10}

        cache.load()
        self.assertFalse(cache.has("other"))

    def test_persist_without_prior_snapshot_and_twice(self):
        cache = self._cache()
        self.assertEqual(cache.load(), 0)
        cache.set("key", "v")

        cache.persist()
        cache.persist()
        self.assertEqual(self.store.snapshots["images"]["entries"]["key"]["value"], "v")
        self.assertEqual(self.store.writes, 2)

    def test_flush_all_keeps_persisted_snapshot(self):
        cache = self._cache()
        cache.set("key", "v")
        cache.persist()

        cache.flush_all()
        self.assertEqual(cache.size(), 0)
        self.assertIn("key", self.store.snapshots["images"]["entries"])

        # A flushed cache can start a new logical run
        self.assertEqual(cache.load(), 1)

    def test_unknown_snapshot_version_is_ignored(self):
        self.store.snapshots["images"] = {"version": 99, "entries": {"key": {"value": 1, "expires_at": 1e12}}}
        cache = self._cache()
        self.assertEqual(cache.load(), 0)

    def test_malformed_entries_are_skipped(self):
        self.store.snapshots["images"] = {
            "version": 1,
            "entries": {
                "good": {"value": 1, "expires_at": self.clock.now + 10},
                "bad": {"value": 2},
            },
        }
        cache = self._cache()
        self.assertEqual(cache.load(), 1)
        self.assertTrue(cache.has("good"))


class TestFileSnapshotStore(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_round_trip(self):
        store = FileSnapshotStore(self.test_dir / "nested")
        snapshot = {"version": 1, "entries": {"k": {"value": [1, 2], "expires_at": 5.0}}}

        store.write("issues", snapshot)

        self.assertEqual(store.read("issues"), snapshot)
        self.assertTrue((self.test_dir / "nested" / "issues.json").exists())
        self.assertEqual(list((self.test_dir / "nested").glob("*.tmp")), [])

    def test_missing_and_corrupt_files_read_as_none(self):
        store = FileSnapshotStore(self.test_dir)
        self.assertIsNone(store.read("absent"))

        (self.test_dir / "corrupt.json").write_text("{not json")
        self.assertIsNone(store.read("corrupt"))


class TestRedisSnapshotStore(unittest.TestCase):
    def test_reads_and_writes_json_under_prefixed_key(self):
        client = MagicMock()
        store = RedisSnapshotStore(client, prefix="enricher")
        snapshot = {"version": 1, "entries": {}}

        store.write("images", snapshot)
        client.set.assert_called_once_with("enricher:images", json.dumps(snapshot))

        client.get.return_value = json.dumps(snapshot)
        self.assertEqual(store.read("images"), snapshot)
        client.get.assert_called_with("enricher:images")

    def test_missing_key_reads_as_none(self):
        client = MagicMock()
        client.get.return_value = None
        self.assertIsNone(RedisSnapshotStore(client).read("images"))


if __name__ == "__main__":
    unittest.main()
