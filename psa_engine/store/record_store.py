"""Abstract record store and its in-memory implementation.

The engine reads and writes every entity through this interface: plain
dict records keyed by table name and id, indexed equality and range
queries, a transaction boundary, and a transactional named counter.

Records returned by the store are copies. Mutating them has no effect
until they are written back with ``patch``.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from psa_engine.exceptions import NotFoundError

logger = logging.getLogger(__name__)

# Table names
DEALS = "deals"
PROJECTS = "projects"
BUDGETS = "budgets"
SERVICES = "services"
USERS = "users"
TASKS = "tasks"
BOOKINGS = "bookings"
TIME_ENTRIES = "time_entries"
EXPENSES = "expenses"
MILESTONES = "milestones"
INVOICES = "invoices"
INVOICE_LINE_ITEMS = "invoice_line_items"
PAYMENTS = "payments"
PROJECT_METRICS = "project_metrics"
COUNTERS = "counters"

ALL_TABLES = (
    DEALS,
    PROJECTS,
    BUDGETS,
    SERVICES,
    USERS,
    TASKS,
    BOOKINGS,
    TIME_ENTRIES,
    EXPENSES,
    MILESTONES,
    INVOICES,
    INVOICE_LINE_ITEMS,
    PAYMENTS,
    PROJECT_METRICS,
    COUNTERS,
)


class RecordStore(ABC):
    """Interface the engine consumes for persistence.

    Implementations must make ``transaction`` an atomic read-validate-write
    boundary: every write inside a block that raises is rolled back, and
    two transactions never interleave.
    """

    @abstractmethod
    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record, or None when absent."""

    @abstractmethod
    def insert(self, table: str, fields: Dict[str, Any]) -> str:
        """Store a new record and return its id."""

    @abstractmethod
    def patch(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Update fields of an existing record."""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> None:
        """Remove a record."""

    @abstractmethod
    def list_by(self, table: str, **equals: Any) -> List[Dict[str, Any]]:
        """Return records whose fields equal every given value."""

    @abstractmethod
    def list_in_range(
        self,
        table: str,
        field: str,
        start: Any = None,
        end: Any = None,
        **equals: Any,
    ) -> List[Dict[str, Any]]:
        """Return records with ``start <= record[field] <= end``.

        A ``None`` bound is open. Extra keyword arguments filter by
        equality as in ``list_by``.
        """

    @abstractmethod
    def transaction(self):
        """Context manager wrapping an atomic unit of work."""

    @abstractmethod
    def next_sequence(self, key: str) -> int:
        """Atomically increment the named counter and return the new value.

        Counters start at 1 and are rolled back with the enclosing
        transaction.
        """

    def require(self, table: str, record_id: str) -> Dict[str, Any]:
        """Return the record or raise ``NotFoundError``."""
        record = self.get(table, record_id)
        if record is None:
            raise NotFoundError(table, record_id)
        return record


def _matches(record: Dict[str, Any], equals: Dict[str, Any]) -> bool:
    return all(record.get(key) == value for key, value in equals.items())


class InMemoryRecordStore(RecordStore):
    """Thread-safe dict-backed record store.

    A re-entrant lock serializes transactions. Each ``transaction`` block,
    nested ones included, snapshots the tables on entry and restores the
    snapshot if the block raises, so a nested block behaves like a
    savepoint.

    Example:
        >>> store = InMemoryRecordStore()
        >>> with store.transaction():
        ...     project_id = store.insert(PROJECTS, {"name": "Website"})
        >>> store.get(PROJECTS, project_id)["name"]
        'Website'
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            table: {} for table in ALL_TABLES
        }
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._tables:
            self._tables[table] = {}
        return self._tables[table]

    @staticmethod
    def _new_id(table: str) -> str:
        return f"{table[:3]}_{uuid.uuid4().hex[:12]}"

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def insert(self, table: str, fields: Dict[str, Any]) -> str:
        with self._lock:
            record = copy.deepcopy(dict(fields))
            record_id = record.get("id") or self._new_id(table)
            rows = self._table(table)
            if record_id in rows:
                raise ValueError(f"Duplicate id {record_id} in {table}")
            record["id"] = record_id
            rows[record_id] = record
            logger.debug(f"Inserted {table}/{record_id}")
            return record_id

    def patch(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise NotFoundError(table, record_id)
            updates = copy.deepcopy(dict(fields))
            updates.pop("id", None)
            rows[record_id].update(updates)

    def delete(self, table: str, record_id: str) -> None:
        with self._lock:
            rows = self._table(table)
            if record_id not in rows:
                raise NotFoundError(table, record_id)
            del rows[record_id]
            logger.debug(f"Deleted {table}/{record_id}")

    def list_by(self, table: str, **equals: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._table(table).values()
                if _matches(record, equals)
            ]

    def list_in_range(
        self,
        table: str,
        field: str,
        start: Any = None,
        end: Any = None,
        **equals: Any,
    ) -> List[Dict[str, Any]]:
        results = []
        for record in self.list_by(table, **equals):
            value = record.get(field)
            if value is None:
                continue
            if start is not None and value < start:
                continue
            if end is not None and value > end:
                continue
            results.append(record)
        return results

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRecordStore"]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield self
            except BaseException:
                self._tables = snapshot
                logger.debug("Transaction rolled back")
                raise

    def next_sequence(self, key: str) -> int:
        with self.transaction():
            counters = self._table(COUNTERS)
            current = counters.get(key, {}).get("value", 0)
            value = current + 1
            counters[key] = {"id": key, "value": value}
            logger.debug(f"Sequence {key} advanced to {value}")
            return value

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))
