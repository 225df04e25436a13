"""
Transactional Key/Value Stores
==============================

Registries never talk to a storage engine directly. They open a
transaction on a KeyValueStore, read and stage writes through it, and
the store commits every staged write together when the block exits
cleanly. Any exception discards the staged writes.

Records are stored as plain dicts (the records' to_dict() form) under a
(namespace, key) pair.

Backends:
- MemoryStore: dicts in process memory
- SQLiteStore: a single `records` table in an SQLite database
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class Transaction:
    """Staged view over a store: reads see this transaction's own writes"""

    def __init__(self, store: "KeyValueStore"):
        self._store = store
        self.writes: Dict[Tuple[str, str], Record] = {}

    def get(self, namespace: str, key: str) -> Optional[Record]:
        staged = self.writes.get((namespace, key))
        if staged is not None:
            return copy.deepcopy(staged)
        return self._store.get(namespace, key)

    def put(self, namespace: str, key: str, value: Record) -> None:
        self.writes[(namespace, key)] = copy.deepcopy(value)

    def exists(self, namespace: str, key: str) -> bool:
        return self.get(namespace, key) is not None


class KeyValueStore:
    """
    Base class for stores with all-or-nothing transactions

    Transactions are serialized by a re-entrant lock. A transaction opened
    while another is active on the same thread joins the outer one, so an
    operation that calls into another registry commits as one unit.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        active = getattr(self._local, "tx", None)
        if active is not None:
            yield active
            return

        with self._lock:
            tx = Transaction(self)
            self._local.tx = tx
            try:
                yield tx
            except Exception:
                logger.debug("Rolled back %d staged write(s)", len(tx.writes))
                raise
            else:
                if tx.writes:
                    self._commit(tx.writes)
                    logger.debug("Committed %d write(s)", len(tx.writes))
            finally:
                self._local.tx = None

    # ==================== BACKEND HOOKS ====================

    def get(self, namespace: str, key: str) -> Optional[Record]:
        """Read committed state"""
        raise NotImplementedError

    def values(self, namespace: str) -> Iterator[Record]:
        """Iterate committed records of a namespace"""
        raise NotImplementedError

    def count(self, namespace: str) -> int:
        return sum(1 for _ in self.values(namespace))

    def _commit(self, writes: Dict[Tuple[str, str], Record]) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store, mostly for tests and single-process deployments"""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Record]] = {}

    def get(self, namespace: str, key: str) -> Optional[Record]:
        record = self._data.get(namespace, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    def values(self, namespace: str) -> Iterator[Record]:
        for record in list(self._data.get(namespace, {}).values()):
            yield copy.deepcopy(record)

    def count(self, namespace: str) -> int:
        return len(self._data.get(namespace, {}))

    def _commit(self, writes: Dict[Tuple[str, str], Record]) -> None:
        for (namespace, key), value in writes.items():
            self._data.setdefault(namespace, {})[key] = value


class SQLiteStore(KeyValueStore):
    """Store backed by an SQLite database file (or ':memory:')"""

    def __init__(self, db_path: Union[str, Path]):
        super().__init__()
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._init_schema()

    def _init_schema(self):
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
            """
            )

    def get(self, namespace: str, key: str) -> Optional[Record]:
        with self._lock:
            row = self.conn.execute(
                "SELECT body FROM records WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def values(self, namespace: str) -> Iterator[Record]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT body FROM records WHERE namespace = ? ORDER BY key",
                (namespace,),
            ).fetchall()
        for (body,) in rows:
            yield json.loads(body)

    def count(self, namespace: str) -> int:
        with self._lock:
            (total,) = self.conn.execute(
                "SELECT COUNT(*) FROM records WHERE namespace = ?", (namespace,)
            ).fetchone()
        return total

    def _commit(self, writes: Dict[Tuple[str, str], Record]) -> None:
        # `with conn` commits on success and rolls back on error
        with self.conn:
            self.conn.executemany(
                "INSERT OR REPLACE INTO records (namespace, key, body) VALUES (?, ?, ?)",
                [
                    (namespace, key, json.dumps(value, sort_keys=True))
                    for (namespace, key), value in writes.items()
                ],
            )

    def close(self):
        self.conn.close()
