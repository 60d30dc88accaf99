import threading
from contextlib import contextmanager
from itertools import count
from typing import Callable, Hashable, Iterator, Optional, Union

from loguru import logger

from core.exceptions import StoreError

TABLES = (
    "profiles",
    "referrals",
    "jobs",
    "reward_rules",
    "ledger_entries",
    "balances",
    "catalog_items",
    "redemption_requests",
    "status_history",
    "idempotency_index",
)

Filter = Union[dict, Callable[[dict], bool], None]


class InMemoryStorage:
    """Named tables of dict rows. Rows are inserted and updated, never deleted.

    Every read returns copies, so the only way to change a row is through
    ``insert``/``update``/``put``. ``transaction()`` makes a group of writes
    all-or-nothing and holds the writer lock for its whole duration. Writes
    inside a transaction record the row they replace, and a rollback replays
    that journal backwards, so its cost follows the writes made, not the
    size of the store.

    Each row carries an insertion sequence that breaks ties in ``select``
    ordering: rows with equal sort values come back in insertion order, or
    newest first when ``descending``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._journal: list[tuple[str, Hashable, Optional[dict], Optional[int]]] = []
        self._sequence = count(1)
        self._tables: dict[str, dict[Hashable, dict]] = {name: {} for name in TABLES}
        self._seq: dict[str, dict[Hashable, int]] = {name: {} for name in TABLES}

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStorage"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._journal = []
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._rollback()
                logger.bind(writes=len(self._journal)).warning("Store transaction rolled back")
                raise
            finally:
                self._depth = 0
                self._journal = []

    def get(self, table: str, key: Hashable) -> Optional[dict]:
        with self._lock:
            row = self._table(table).get(key)
            return dict(row) if row is not None else None

    def select(
        self,
        table: str,
        where: Filter = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        with self._lock:
            rows_by_key = self._table(table)
            seq = self._seq[table]
            ranked = [
                (seq.get(key, 0), dict(row))
                for key, row in rows_by_key.items()
                if self._matches(row, where)
            ]
        if order_by:
            ranked.sort(
                key=lambda item: (item[1].get(order_by) is not None, item[1].get(order_by), item[0]),
                reverse=descending,
            )
        rows = [row for _, row in ranked]
        if offset:
            rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, table: str, where: Filter = None) -> int:
        with self._lock:
            return sum(1 for row in self._table(table).values() if self._matches(row, where))

    def insert(self, table: str, row: dict, key: str = "id") -> dict:
        with self._lock:
            rows = self._table(table)
            row_key = row.get(key)
            if row_key is None:
                raise StoreError(f"{table}: missing primary key '{key}'")
            if row_key in rows:
                raise StoreError(f"{table}: duplicate key {row_key}")
            self._record(table, row_key)
            rows[row_key] = dict(row)
            self._seq[table][row_key] = next(self._sequence)
            return dict(row)

    def update(self, table: str, key: Hashable, changes: dict) -> dict:
        with self._lock:
            rows = self._table(table)
            if key not in rows:
                raise StoreError(f"{table}: no row with key {key}")
            self._record(table, key)
            rows[key] = {**rows[key], **changes}
            return dict(rows[key])

    def put(self, table: str, key: Hashable, row: dict) -> dict:
        with self._lock:
            rows = self._table(table)
            self._record(table, key)
            rows[key] = dict(row)
            self._seq[table].setdefault(key, next(self._sequence))
            return dict(row)

    def _record(self, table: str, key: Hashable) -> None:
        # Rows are replaced, never mutated in place, so the stored prior row is safe to restore.
        if self._depth:
            self._journal.append((table, key, self._tables[table].get(key), self._seq[table].get(key)))

    def _rollback(self) -> None:
        for table, key, prior, seq in reversed(self._journal):
            if prior is None:
                self._tables[table].pop(key, None)
                self._seq[table].pop(key, None)
            else:
                self._tables[table][key] = prior
                self._seq[table][key] = seq

    def _table(self, name: str) -> dict[Hashable, dict]:
        try:
            return self._tables[name]
        except KeyError:
            raise StoreError(f"Unknown table '{name}'") from None

    @staticmethod
    def _matches(row: dict, where: Filter) -> bool:
        if where is None:
            return True
        if callable(where):
            return bool(where(row))
        return all(row.get(field) == value for field, value in where.items())
