"""Tests for votes/store.py: SQLite JSON documents, batches and subscriptions."""
import sys
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from votes.store import DocumentExistsError, DocumentStore, StoreError, Subscription


class TestBasicOperations:
    def test_creates_file_and_parent(self, tmp_path):
        path = tmp_path / "sub" / "votes.sqlite"
        DocumentStore(path)
        assert path.exists()

    def test_get_missing(self, store):
        assert store.get("votes", "salesData") is None

    def test_set_and_get(self, store):
        store.set("c", "d", {"a": 1, "b": "x"})
        assert store.get("c", "d") == {"a": 1, "b": "x"}

    def test_set_replaces(self, store):
        store.set("c", "d", {"a": 1})
        store.set("c", "d", {"b": 2})
        assert store.get("c", "d") == {"b": 2}

    def test_set_merge(self, store):
        store.set("c", "d", {"a": 1})
        store.set("c", "d", {"b": 2}, merge=True)
        assert store.get("c", "d") == {"a": 1, "b": 2}

    def test_collections_are_separate(self, store):
        store.set("one", "d", {"v": 1})
        assert store.get("two", "d") is None

    def test_persists_across_instances(self, tmp_path):
        DocumentStore(tmp_path / "v.sqlite").set("c", "d", {"v": 1})
        assert DocumentStore(tmp_path / "v.sqlite").get("c", "d") == {"v": 1}


class TestCreate:
    def test_create_new(self, store):
        store.create("userVotes", "u1", {"vote": "support"})
        assert store.get("userVotes", "u1") == {"vote": "support"}

    def test_create_existing_raises(self, store):
        store.create("userVotes", "u1", {"vote": "support"})
        with pytest.raises(DocumentExistsError):
            store.create("userVotes", "u1", {"vote": "against"})
        assert store.get("userVotes", "u1") == {"vote": "support"}

    def test_exists_error_is_store_error(self):
        assert issubclass(DocumentExistsError, StoreError)


class TestIncrement:
    def test_missing_document_initialized(self, store):
        doc = store.increment("votes", "salesData", "support", 1,
                              initial={"support": 0, "against": 0})
        assert doc == {"support": 1, "against": 0}

    def test_existing_field(self, store):
        store.set("votes", "salesData", {"support": 3, "against": 1})
        doc = store.increment("votes", "salesData", "against")
        assert doc == {"support": 3, "against": 2}

    def test_missing_field_counts_as_zero(self, store):
        store.set("votes", "salesData", {"support": 3})
        assert store.increment("votes", "salesData", "against")["against"] == 1

    def test_invalid_field_name(self, store):
        with pytest.raises(ValueError):
            store.increment("votes", "salesData", "support') --")

    def test_concurrent_increments_never_lose_updates(self, store):
        n_threads, per_thread = 8, 10
        barrier = threading.Barrier(n_threads)
        errors = []

        def worker():
            barrier.wait()
            try:
                for _ in range(per_thread):
                    store.increment("votes", "salesData", "support",
                                    initial={"support": 0, "against": 0})
            except StoreError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert store.get("votes", "salesData") == {
            "support": n_threads * per_thread, "against": 0,
        }


class TestBatch:
    def test_commits_all(self, store):
        with store.batch():
            store.create("userVotes", "u1", {"vote": "support"})
            store.increment("votes", "salesData", "support")
        assert store.get("userVotes", "u1") is not None
        assert store.get("votes", "salesData") == {"support": 1}

    def test_reads_inside_batch_see_pending_writes(self, store):
        with store.batch():
            store.set("c", "d", {"v": 1})
            assert store.get("c", "d") == {"v": 1}

    def test_failure_rolls_back_everything(self, store):
        store.create("userVotes", "u1", {"vote": "support"})
        with pytest.raises(DocumentExistsError):
            with store.batch():
                store.increment("votes", "salesData", "support")
                store.create("userVotes", "u1", {"vote": "against"})
        assert store.get("votes", "salesData") is None

    def test_exception_in_block_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.batch():
                store.set("c", "d", {"v": 1})
                raise RuntimeError("boom")
        assert store.get("c", "d") is None

    def test_nested_batch_rejected(self, store):
        with pytest.raises(StoreError, match="Nested"):
            with store.batch():
                with store.batch():
                    pass

    def test_subscribers_notified_after_commit_only(self, store):
        seen = []
        store.subscribe("c", "d", seen.append)
        with store.batch():
            store.set("c", "d", {"v": 1})
            assert seen == [None]
        assert seen == [None, {"v": 1}]

    def test_rolled_back_batch_does_not_notify(self, store):
        seen = []
        store.subscribe("c", "d", seen.append)
        with pytest.raises(RuntimeError):
            with store.batch():
                store.set("c", "d", {"v": 1})
                raise RuntimeError("boom")
        assert seen == [None]


class TestSubscriptions:
    def test_initial_snapshot(self, store):
        store.set("votes", "salesData", {"support": 2})
        seen = []
        store.subscribe("votes", "salesData", seen.append)
        assert seen == [{"support": 2}]

    def test_updates_delivered(self, store):
        seen = []
        store.subscribe("votes", "salesData", seen.append)
        store.increment("votes", "salesData", "support")
        store.increment("votes", "salesData", "support")
        assert seen == [None, {"support": 1}, {"support": 2}]

    def test_other_documents_ignored(self, store):
        seen = []
        store.subscribe("votes", "salesData", seen.append)
        store.set("votes", "other", {"x": 1})
        assert seen == [None]

    def test_cancel_stops_delivery(self, store):
        seen = []
        sub = store.subscribe("votes", "salesData", seen.append)
        assert store.subscriber_count("votes", "salesData") == 1
        sub.cancel()
        assert not sub.active
        assert store.subscriber_count("votes", "salesData") == 0
        store.increment("votes", "salesData", "support")
        assert seen == [None]

    def test_cancel_is_idempotent(self, store):
        sub = store.subscribe("votes", "salesData", lambda doc: None)
        sub.cancel()
        sub.cancel()
        assert store.subscriber_count("votes", "salesData") == 0

    def test_context_manager_cancels(self, store):
        with store.subscribe("votes", "salesData", lambda doc: None) as sub:
            assert isinstance(sub, Subscription)
            assert sub.active
        assert store.subscriber_count("votes", "salesData") == 0

    def test_failing_callback_does_not_break_write(self, store):
        good = []

        def bad(doc):
            if doc is not None:
                raise RuntimeError("listener bug")

        store.subscribe("votes", "salesData", bad)
        store.subscribe("votes", "salesData", good.append)
        store.increment("votes", "salesData", "support")
        assert store.get("votes", "salesData") == {"support": 1}
        assert good[-1] == {"support": 1}

    def test_failed_initial_read_releases_listener(self, store):
        seen = []
        with patch.object(DocumentStore, "get", side_effect=StoreError("offline")):
            with pytest.raises(StoreError):
                store.subscribe("votes", "salesData", seen.append)
        assert store.subscriber_count("votes", "salesData") == 0
        store.increment("votes", "salesData", "support")
        assert seen == []


class TestFailures:
    def test_unopenable_path_raises_store_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StoreError):
            DocumentStore(blocker / "votes.sqlite")

    def test_sqlite_error_becomes_store_error(self, store):
        import sqlite3
        with patch.object(DocumentStore, "_connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StoreError):
                store.set("c", "d", {"v": 1})
            with pytest.raises(StoreError):
                store.get("c", "d")
