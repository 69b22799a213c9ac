# vetnet/services/record_store.py

from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

# ============================================================================
# RECORD STORE
# ============================================================================

class DuplicateKeyError(KeyError):
    """Raised when inserting a record under a key that already exists."""


class RecordStore:
    """
    Generic table/record storage for nets, participants, speak requests and
    chat messages.

    Records are plain JSON-compatible dicts kept in memory, grouped by table
    and keyed by a string. When a file path is given, every table is loaded
    from it on start and written back after each committed unit of work, so
    nets survive backend restarts.

    Data Structures:
        tables: Maps table name -> {key: record}
                Example: {"nets": {"uuid-123": {"id": "uuid-123", "name": "..."}}}

    Transactions:
        Writes made inside ``transaction()`` are recorded in an undo log. If
        an exception escapes the block, the log is replayed backwards and the
        tables return to the state they had on entry. Nested blocks join the
        outermost one.

    Persistence:
        A save rewrites the whole file synchronously, under the store lock,
        once per committed outermost transaction. Callers run inside the
        event loop, so a file-backed store blocks it for the length of the
        write. That is acceptable for a single-process mock deployment with
        small tables; anything larger wants a real database.

    Usage:
        store = RecordStore()
        with store.transaction():
            store.insert("nets", net_id, {...})
            store.insert("net_participants", key, {...})
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or None
        self.tables: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.RLock()
        self._undo: Optional[List[tuple]] = None
        self._depth = 0
        if self.path:
            self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load all tables from the JSON file, starting empty if it is missing."""
        if not os.path.exists(self.path):
            logger.info("Store file %s not found, starting empty", self.path)
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        self.tables = {name: dict(rows) for name, rows in data.items()}
        logger.info(
            "✓ Loaded %d records from %s",
            sum(len(rows) for rows in self.tables.values()),
            self.path,
        )

    def save(self) -> None:
        """Persist all tables to the JSON file. No-op for in-memory stores."""
        if not self.path:
            return
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.tables, f, indent=2)
        os.replace(tmp_path, self.path)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._undo = []
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._rollback()
                raise
            else:
                if outermost:
                    self.save()
            finally:
                self._depth -= 1
                if outermost:
                    self._undo = None

    def _rollback(self) -> None:
        for table, key, previous in reversed(self._undo or []):
            rows = self.tables.setdefault(table, {})
            if previous is None:
                rows.pop(key, None)
            else:
                rows[key] = previous
        logger.warning("Rolled back %d writes", len(self._undo or []))

    def _remember(self, table: str, key: str) -> None:
        if self._undo is not None:
            previous = self.tables.get(table, {}).get(key)
            self._undo.append((table, key, dict(previous) if previous is not None else None))

    @contextmanager
    def _write(self) -> Iterator[None]:
        # Single writes outside a transaction still commit (and persist) on their own
        if self._depth:
            yield
        else:
            with self.transaction():
                yield

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def insert(self, table: str, key: str, record: dict) -> dict:
        with self._lock, self._write():
            rows = self.tables.setdefault(table, {})
            if key in rows:
                raise DuplicateKeyError(f"{table}/{key} already exists")
            self._remember(table, key)
            rows[key] = dict(record)
            return dict(rows[key])

    def get(self, table: str, key: str) -> Optional[dict]:
        with self._lock:
            record = self.tables.get(table, {}).get(key)
            return dict(record) if record is not None else None

    def update(self, table: str, key: str, **changes: Any) -> dict:
        with self._lock, self._write():
            rows = self.tables.get(table, {})
            if key not in rows:
                raise KeyError(f"{table}/{key} does not exist")
            self._remember(table, key)
            rows[key] = {**rows[key], **changes}
            return dict(rows[key])

    def delete(self, table: str, key: str) -> bool:
        with self._lock, self._write():
            rows = self.tables.get(table, {})
            if key not in rows:
                return False
            self._remember(table, key)
            del rows[key]
            return True

    def query(
        self,
        table: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[dict]:
        """
        Return records whose fields equal every keyword filter.

        Args:
            table: Table name
            order_by: Field to sort by; insertion order when omitted
            descending: Reverse the ordering
            limit: Maximum number of records returned
            **filters: field=value equality filters (a list or tuple value
                       matches any of its members)
        """
        with self._lock:
            rows = [
                dict(record)
                for record in self.tables.get(table, {}).values()
                if all(_matches(record.get(field), value) for field, value in filters.items())
            ]
        if order_by is not None:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        elif descending:
            rows.reverse()
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, table: str, **filters: Any) -> int:
        return len(self.query(table, **filters))


def _matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return actual in expected
    return actual == expected
