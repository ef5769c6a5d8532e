"""
Unit tests for the attempt store backends.
"""
import json
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

from quizquest.attempt_store import AttemptStore, JsonAttemptStore
from quizquest.errors import NotFoundError, StorageInitError, StorageIOError, ValidationError
from tests.test_fixtures import TestFixtures, async_test

NOW = datetime(2024, 1, 15, 12, 0, 0)


class TestAttemptStoreCrud(unittest.TestCase):
    """Test cases for create, read, update and delete."""

    @async_test
    async def test_create_assigns_increasing_ids(self):
        store = AttemptStore(clock=lambda: NOW)

        first = await store.create(TestFixtures.create_attempt(3))
        second = await store.create(TestFixtures.create_attempt(7))

        self.assertEqual(first.id, 1)
        self.assertEqual(second.id, 2)
        self.assertEqual(first.last_modified, NOW)
        self.assertEqual(len(await store.query_all()), 2)

    @async_test
    async def test_create_ignores_given_id_and_copies_record(self):
        store = AttemptStore(clock=lambda: NOW)
        record = TestFixtures.create_attempt()
        record.id = 99

        stored = await store.create(record)
        record.score = 0

        self.assertEqual(stored.id, 1)
        self.assertEqual((await store.get(1)).score, 5)

    @async_test
    async def test_create_rejects_impossible_score(self):
        store = AttemptStore()
        for score, total in ((11, 10), (-1, 10)):
            with self.assertRaises(ValidationError):
                await store.create(TestFixtures.create_attempt(score, total))
        self.assertEqual(await store.query_all(), [])

    @async_test
    async def test_update_merges_fields(self):
        clock_times = [NOW, NOW + timedelta(minutes=5)]
        store = AttemptStore(clock=lambda: clock_times[0])
        created = await store.create(TestFixtures.create_attempt(5))

        clock_times.pop(0)
        updated = await store.update(created.id, score=6, extra={'note': 'regraded'})

        self.assertEqual(updated.score, 6)
        self.assertEqual(updated.participant_name, "Ada")
        self.assertEqual(updated.extra, {'note': 'regraded'})
        self.assertEqual(updated.last_modified, NOW + timedelta(minutes=5))

    @async_test
    async def test_update_missing_attempt(self):
        store = AttemptStore()
        with self.assertRaises(NotFoundError):
            await store.update(42, score=1)

    @async_test
    async def test_update_rejects_unknown_field(self):
        store = AttemptStore()
        created = await store.create(TestFixtures.create_attempt())
        with self.assertRaises(ValidationError):
            await store.update(created.id, id=7)

    @async_test
    async def test_update_rejects_badly_typed_values(self):
        store = AttemptStore(clock=lambda: NOW)
        await store.create(TestFixtures.create_attempt(3, 10, NOW))
        created = await store.create(TestFixtures.create_attempt(5, 10, NOW + timedelta(minutes=1)))

        bad_updates = (
            {'completed_at': "yesterday"},
            {'score': "7"},
            {'score': True},
            {'score': 11},
            {'total_questions': 4},
            {'total_questions': -1},
            {'extra': ["note"]},
            {'participant_name': None},
        )
        for fields in bad_updates:
            with self.assertRaises(ValidationError):
                await store.update(created.id, **fields)

        # Queries still work on untouched data
        by_date = await store.query_all(sort_by='date')
        self.assertEqual([r.score for r in by_date], [3, 5])
        self.assertEqual((await store.get(created.id)).completed_at, NOW + timedelta(minutes=1))
        self.assertEqual(await store.prune(now=NOW), 0)

    @async_test
    async def test_update_score_and_total_together(self):
        store = AttemptStore()
        created = await store.create(TestFixtures.create_attempt(5, 10))

        updated = await store.update(created.id, score=12, total_questions=12)
        self.assertEqual((updated.score, updated.total_questions), (12, 12))

    @async_test
    async def test_get_missing_attempt(self):
        store = AttemptStore()
        with self.assertRaises(NotFoundError):
            await store.get(1)

    @async_test
    async def test_delete_is_noop_when_absent(self):
        store = AttemptStore()
        created = await store.create(TestFixtures.create_attempt())

        self.assertTrue(await store.delete(created.id))
        self.assertFalse(await store.delete(created.id))
        self.assertEqual(await store.query_all(), [])

    @async_test
    async def test_clear_keeps_ids_monotonic(self):
        store = AttemptStore()
        await store.create(TestFixtures.create_attempt())
        await store.create(TestFixtures.create_attempt())

        await store.clear()
        self.assertEqual(await store.collection_sizes(), {'attempts': 0, 'users': 0, 'settings': 0})

        created = await store.create(TestFixtures.create_attempt())
        self.assertEqual(created.id, 3)


class TestAttemptStoreQueries(unittest.TestCase):
    """Test cases for sorting, limiting and date ranges."""

    async def _seed(self, store, scores, start=NOW):
        for offset, score in enumerate(scores):
            await store.create(TestFixtures.create_attempt(score, 10, start + timedelta(minutes=offset)))

    @async_test
    async def test_sort_by_score_descending(self):
        store = AttemptStore()
        await self._seed(store, [3, 7, 5])

        results = await store.query_all(sort_by="score", descending=True)
        self.assertEqual([r.score for r in results], [7, 5, 3])

    @async_test
    async def test_sort_by_score_ascending(self):
        store = AttemptStore()
        await self._seed(store, [3, 7, 5])

        results = await store.query_all(sort_by="score")
        self.assertEqual([r.score for r in results], [3, 5, 7])

    @async_test
    async def test_score_ties_keep_earliest_first(self):
        store = AttemptStore()
        await store.create(TestFixtures.create_attempt(5, 10, NOW + timedelta(hours=1), name="Late"))
        await store.create(TestFixtures.create_attempt(5, 10, NOW, name="Early"))
        await store.create(TestFixtures.create_attempt(9, 10, NOW + timedelta(hours=2), name="Best"))

        results = await store.query_all(sort_by="score", descending=True)
        self.assertEqual([r.participant_name for r in results], ["Best", "Early", "Late"])

    @async_test
    async def test_limit_applies_after_sorting(self):
        store = AttemptStore()
        await self._seed(store, [3, 7, 5, 9, 1])

        results = await store.query_all(sort_by="score", descending=True, limit=2)
        self.assertEqual([r.score for r in results], [9, 7])

        self.assertEqual(await store.query_all(limit=0), [])

    @async_test
    async def test_sort_by_date(self):
        store = AttemptStore()
        await store.create(TestFixtures.create_attempt(1, 10, NOW + timedelta(days=2)))
        await store.create(TestFixtures.create_attempt(2, 10, NOW))
        await store.create(TestFixtures.create_attempt(3, 10, NOW + timedelta(days=1)))

        newest_first = await store.query_all(sort_by="date", descending=True)
        self.assertEqual([r.score for r in newest_first], [1, 3, 2])
        insertion = await store.query_all()
        self.assertEqual([r.score for r in insertion], [1, 2, 3])

    @async_test
    async def test_invalid_query_arguments(self):
        store = AttemptStore()
        with self.assertRaises(ValidationError):
            await store.query_all(sort_by="name")
        with self.assertRaises(ValidationError):
            await store.query_all(limit=-1)

    @async_test
    async def test_query_range_is_inclusive(self):
        store = AttemptStore()
        await self._seed(store, [1, 2, 3, 4])

        results = await store.query_range(NOW + timedelta(minutes=1), NOW + timedelta(minutes=2))
        self.assertEqual([r.score for r in results], [2, 3])

        with self.assertRaises(ValidationError):
            await store.query_range(NOW + timedelta(minutes=2), NOW)

    @async_test
    async def test_results_are_copies(self):
        store = AttemptStore()
        await self._seed(store, [4])

        results = await store.query_all()
        results[0].score = 10
        self.assertEqual((await store.query_all())[0].score, 4)


class TestAttemptStorePrune(unittest.TestCase):
    """Test cases for retention pruning."""

    @async_test
    async def test_prune_removes_attempts_at_or_before_cutoff(self):
        store = AttemptStore(retention=timedelta(days=30), clock=lambda: NOW)
        await store.create(TestFixtures.create_attempt(1, 10, NOW - timedelta(days=31)))
        await store.create(TestFixtures.create_attempt(2, 10, NOW - timedelta(days=30)))
        await store.create(TestFixtures.create_attempt(3, 10, NOW - timedelta(days=29)))
        await store.create(TestFixtures.create_attempt(4, 10, NOW))

        removed = await store.prune()

        self.assertEqual(removed, 2)
        self.assertEqual([r.score for r in await store.query_all()], [3, 4])

    @async_test
    async def test_prune_with_explicit_window(self):
        store = AttemptStore(clock=lambda: NOW)
        await store.create(TestFixtures.create_attempt(1, 10, NOW - timedelta(days=2)))
        await store.create(TestFixtures.create_attempt(2, 10, NOW - timedelta(hours=1)))

        self.assertEqual(await store.prune(retention=timedelta(days=1)), 1)
        self.assertEqual(await store.prune(retention=timedelta(days=1)), 0)


class TestJsonAttemptStore(unittest.TestCase):
    """Test cases for the JSON file backend."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "data" / "attempts.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    @async_test
    async def test_open_creates_file(self):
        store = JsonAttemptStore(str(self.path))
        await store.open()

        self.assertTrue(self.path.exists())
        with open(self.path, encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual(data, {'next_id': 1, 'attempts': [], 'users': [], 'settings': []})

    @async_test
    async def test_attempts_survive_reopen(self):
        store = JsonAttemptStore(str(self.path), clock=lambda: NOW)
        await store.create(TestFixtures.create_attempt(3, 10, NOW))
        await store.create(TestFixtures.create_attempt(8, 10, NOW + timedelta(minutes=1)))
        await store.close()

        reopened = JsonAttemptStore(str(self.path))
        results = await reopened.query_all(sort_by="score", descending=True)

        self.assertEqual([r.score for r in results], [8, 3])
        self.assertEqual(results[0].completed_at, NOW + timedelta(minutes=1))
        self.assertEqual(results[0].last_modified, NOW)
        created = await reopened.create(TestFixtures.create_attempt())
        self.assertEqual(created.id, 3)

    @async_test
    async def test_corrupt_file_fails_to_open(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{ not json", encoding='utf-8')

        store = JsonAttemptStore(str(self.path))
        with self.assertRaises(StorageInitError):
            await store.open()

    @async_test
    async def test_malformed_record_fails_to_open(self):
        self.path.parent.mkdir(parents=True)
        TestFixtures.write_json(self.path, {'attempts': [{'participant_name': "Ada"}]})

        with self.assertRaises(StorageInitError):
            await JsonAttemptStore(str(self.path)).open()

    @async_test
    async def test_write_failure_leaves_state_unchanged(self):
        store = JsonAttemptStore(str(self.path))
        await store.create(TestFixtures.create_attempt(4))

        with patch.object(store, '_write_file', side_effect=OSError("disk full")):
            with self.assertRaises(StorageIOError):
                await store.create(TestFixtures.create_attempt(9))
            with self.assertRaises(StorageIOError):
                await store.delete(1)

        results = await store.query_all()
        self.assertEqual([r.score for r in results], [4])
        created = await store.create(TestFixtures.create_attempt(6))
        self.assertEqual(created.id, 2)

    @async_test
    async def test_unserializable_update_raises_storage_error(self):
        store = JsonAttemptStore(str(self.path), clock=lambda: NOW)
        created = await store.create(TestFixtures.create_attempt(4))

        with self.assertRaises(StorageIOError):
            await store.update(created.id, extra={'when': NOW})

        self.assertEqual((await store.get(created.id)).extra, {})
        reopened = JsonAttemptStore(str(self.path))
        self.assertEqual([r.extra for r in await reopened.query_all()], [{}])
        self.assertEqual(list(self.path.parent.glob(".attempts-*")), [])


if __name__ == '__main__':
    unittest.main()
