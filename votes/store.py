"""
SQLite-backed document store for the vote widget.

Documents are JSON objects addressed by ``(collection, doc_id)``.  The store
offers exactly the primitives the vote tally needs:

    get        point read
    set        point write (optionally merged into the existing document)
    create     write-once insert; DocumentExistsError if already present
    increment  atomic per-field increment, creating the document if absent
    batch      group writes into one all-or-nothing transaction
    subscribe  live snapshots of one document, released via Subscription

Every write runs in its own ``BEGIN IMMEDIATE`` transaction (or the enclosing
batch), so concurrent writers from other threads or processes serialize in
SQLite rather than in the caller.  Subscribers are notified synchronously on
the writing thread after the transaction commits.
"""

from __future__ import annotations

import itertools
import json
import logging
import re
import sqlite3
import threading
from collections import defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

Document = dict[str, Any]
DocKey = tuple[str, str]

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        collection  TEXT NOT NULL,
        doc_id      TEXT NOT NULL,
        data        TEXT NOT NULL,
        updated_at  TEXT NOT NULL,
        PRIMARY KEY (collection, doc_id)
    )
"""

# Field names are spliced into JSON paths, so only plain identifiers pass.
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(Exception):
    """A read or write against the document store failed."""


class DocumentExistsError(StoreError):
    """create() targeted a document that already exists."""


class Subscription:
    """Handle for a live subscription; ``cancel()`` releases it.

    Cancelling twice is harmless.  Usable as a context manager.
    """

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class _Batch:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.touched: list[DocKey] = []


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_field(name: str) -> str:
    if not _FIELD_NAME.match(name):
        raise ValueError(f"Invalid document field name: {name!r}")
    return name


class DocumentStore:
    """JSON documents in a single SQLite table.

    Args:
        db_path: SQLite file; created (with its parent directory) if missing.
        timeout: Seconds a writer waits for the database lock.
    """

    def __init__(self, db_path: Path | str, timeout: float = 10.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._local = threading.local()
        self._subscribers: dict[DocKey, dict[int, Callable[[Document | None], None]]] = (
            defaultdict(dict)
        )
        self._sub_lock = threading.Lock()
        self._sub_ids = itertools.count(1)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ── Connections ───────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode with standard pragmas."""
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")
        return conn

    def _init_schema(self) -> None:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open document store at {self._db_path}: {exc}") from exc
        try:
            conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot initialise document store: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside BEGIN IMMEDIATE; commit or roll back."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open document store: {exc}") from exc
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(str(exc)) from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _current_batch(self) -> _Batch | None:
        return getattr(self._local, "batch", None)

    def _write(self, key: DocKey, op: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run *op* in the active batch, or in its own transaction."""
        batch = self._current_batch()
        if batch is not None:
            result = op(batch.conn)
            batch.touched.append(key)
            return result
        with self._transaction() as conn:
            result = op(conn)
        self._notify([key])
        return result

    @contextmanager
    def batch(self) -> Iterator["DocumentStore"]:
        """Group the writes issued inside the block into one transaction.

        Writes apply in issue order.  If any write (or the block) raises,
        none of them are committed and no subscriber is notified.

        Raises:
            StoreError: on nested batches or any database failure.
        """
        if self._current_batch() is not None:
            raise StoreError("Nested batches are not supported")
        with self._transaction() as conn:
            batch = _Batch(conn)
            self._local.batch = batch
            try:
                yield self
            finally:
                self._local.batch = None
        self._notify(batch.touched)

    # ── Reads ─────────────────────────────────────────────────────────────

    @staticmethod
    def _fetch(conn: sqlite3.Connection, collection: str, doc_id: str) -> Document | None:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row["data"]) if row is not None else None

    def get(self, collection: str, doc_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""
        batch = self._current_batch()
        if batch is not None:
            return self._fetch(batch.conn, collection, doc_id)
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open document store: {exc}") from exc
        try:
            return self._fetch(conn, collection, doc_id)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    # ── Writes ────────────────────────────────────────────────────────────

    def set(self, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        """Write *data*; with ``merge=True`` update fields of the existing document."""

        def op(conn: sqlite3.Connection) -> None:
            payload = dict(data)
            if merge:
                payload = {**(self._fetch(conn, collection, doc_id) or {}), **payload}
            conn.execute(
                "INSERT INTO documents (collection, doc_id, data, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (collection, doc_id) DO UPDATE SET "
                "data = excluded.data, updated_at = excluded.updated_at",
                (collection, doc_id, json.dumps(payload), _now()),
            )

        self._write((collection, doc_id), op)

    def create(self, collection: str, doc_id: str, data: Document) -> None:
        """Insert a new document.

        Raises:
            DocumentExistsError: if ``(collection, doc_id)`` already exists.
        """

        def op(conn: sqlite3.Connection) -> None:
            try:
                conn.execute(
                    "INSERT INTO documents (collection, doc_id, data, updated_at) "
                    "VALUES (?, ?, ?, ?)",
                    (collection, doc_id, json.dumps(data), _now()),
                )
            except sqlite3.IntegrityError as exc:
                raise DocumentExistsError(f"{collection}/{doc_id} already exists") from exc

        self._write((collection, doc_id), op)

    def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        delta: int = 1,
        initial: Document | None = None,
    ) -> Document:
        """Atomically add *delta* to a numeric field and return the new document.

        A missing document is created from *initial* with *field* set to
        *delta*; a missing field counts as 0.  The whole operation is one SQL
        upsert, so concurrent increments never lose an update.
        """
        path = f"$.{_check_field(field)}"
        seed = json.dumps({**(initial or {}), field: delta})

        def op(conn: sqlite3.Connection) -> Document:
            conn.execute(
                "INSERT INTO documents (collection, doc_id, data, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (collection, doc_id) DO UPDATE SET "
                "data = json_set(documents.data, ?, "
                "COALESCE(json_extract(documents.data, ?), 0) + ?), "
                "updated_at = excluded.updated_at",
                (collection, doc_id, seed, _now(), path, path, delta),
            )
            return self._fetch(conn, collection, doc_id) or {}

        return self._write((collection, doc_id), op)

    # ── Subscriptions ─────────────────────────────────────────────────────

    def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Document | None], None],
    ) -> Subscription:
        """Deliver the current document now and after every committed write.

        The callback runs on the thread that performed the write.  Callers
        must ``cancel()`` the returned Subscription when they stop listening.
        """
        key = (collection, doc_id)
        sub_id = next(self._sub_ids)
        with self._sub_lock:
            self._subscribers[key][sub_id] = callback

        def cancel() -> None:
            with self._sub_lock:
                listeners = self._subscribers.get(key)
                if listeners is not None:
                    listeners.pop(sub_id, None)
                    if not listeners:
                        del self._subscribers[key]

        subscription = Subscription(cancel)
        try:
            current = self.get(collection, doc_id)
        except StoreError:
            subscription.cancel()
            raise
        self._deliver(callback, current)
        return subscription

    def subscriber_count(self, collection: str, doc_id: str) -> int:
        with self._sub_lock:
            return len(self._subscribers.get((collection, doc_id), {}))

    def _deliver(self, callback: Callable[[Document | None], None], doc: Document | None) -> None:
        try:
            callback(doc)
        except Exception:
            # The write already committed; one faulty listener must not fail it.
            logger.exception("document subscriber raised")

    def _notify(self, keys: list[DocKey]) -> None:
        for key in dict.fromkeys(keys):
            with self._sub_lock:
                listeners = list(self._subscribers.get(key, {}).values())
            if not listeners:
                continue
            try:
                doc = self.get(*key)
            except StoreError:
                logger.exception("could not read %s/%s for subscribers", *key)
                continue
            for callback in listeners:
                self._deliver(callback, doc)
