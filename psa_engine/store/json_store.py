"""JSON-file workspace store used by the command line interface."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Type, Union

from pydantic import ValidationError

from psa_engine.exceptions import InvalidStateError
from psa_engine.models import (
    BaseDataModel,
    Booking,
    Budget,
    Deal,
    Expense,
    Invoice,
    InvoiceLineItem,
    Milestone,
    Payment,
    Project,
    ProjectMetricsSnapshot,
    Service,
    Task,
    TimeEntry,
    User,
)
from psa_engine.store import record_store as tables
from psa_engine.store.record_store import InMemoryRecordStore

logger = logging.getLogger(__name__)

TABLE_MODELS: Dict[str, Type[BaseDataModel]] = {
    tables.DEALS: Deal,
    tables.PROJECTS: Project,
    tables.BUDGETS: Budget,
    tables.SERVICES: Service,
    tables.USERS: User,
    tables.TASKS: Task,
    tables.BOOKINGS: Booking,
    tables.TIME_ENTRIES: TimeEntry,
    tables.EXPENSES: Expense,
    tables.MILESTONES: Milestone,
    tables.INVOICES: Invoice,
    tables.INVOICE_LINE_ITEMS: InvoiceLineItem,
    tables.PAYMENTS: Payment,
    tables.PROJECT_METRICS: ProjectMetricsSnapshot,
}


class JsonFileRecordStore(InMemoryRecordStore):
    """In-memory store persisted to a single JSON document.

    The file maps table names to lists of records. On load every record is
    validated through its table's model, so dates and enums come back as
    native types; ``save`` writes them in JSON form.

    Example:
        >>> store = JsonFileRecordStore("workspace.json")
        >>> # ... run engine operations against store ...
        >>> store.save()
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self.load()

    def load(self) -> None:
        """Replace the in-memory tables with the file contents.

        Raises:
            InvalidStateError: If a record fails model validation
        """
        with open(self.path, "r", encoding="utf-8") as handle:
            document: Dict[str, Any] = json.load(handle)

        with self.transaction():
            for table, records in document.items():
                rows = self._table(table)
                rows.clear()
                model = TABLE_MODELS.get(table)
                for raw in records:
                    record = self._decode(table, model, raw)
                    rows[record["id"]] = record

        logger.info(
            f"Loaded workspace from {self.path}",
            extra={"tables": len(document)},
        )

    @staticmethod
    def _decode(
        table: str, model: Union[Type[BaseDataModel], None], raw: Dict[str, Any]
    ) -> Dict[str, Any]:
        if model is None:
            return dict(raw)
        try:
            instance = model.from_record(raw)
        except ValidationError as e:
            raise InvalidStateError(
                f"Invalid {table} record {raw.get('id')}: {e.error_count()} error(s)",
                recovery_hint="Fix the record in the workspace file",
                context={"table": table, "record_id": raw.get("id")},
            ) from e
        record = instance.to_record()
        record["id"] = raw["id"]
        return record

    def save(self) -> None:
        """Write all tables to the workspace file."""
        document: Dict[str, Any] = {}
        with self._lock:
            for table, rows in self._tables.items():
                model = TABLE_MODELS.get(table)
                if model is None:
                    document[table] = list(rows.values())
                else:
                    document[table] = [
                        model.from_record(record).model_dump(mode="json")
                        for record in rows.values()
                    ]

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2)
        logger.debug(f"Saved workspace to {self.path}")
