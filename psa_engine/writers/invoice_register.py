"""Invoice register generator for tabular invoice reports.

This module builds pandas DataFrames from the invoices, line items and
payments of a project: one register row per invoice and one detail row per
line item. Amounts stay in integer cents.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from psa_engine.models.enums import InvoiceStatus
from psa_engine.models.invoice import Invoice, InvoiceLineItem
from psa_engine.store.record_store import (
    INVOICE_LINE_ITEMS,
    INVOICES,
    PAYMENTS,
    RecordStore,
)

logger = logging.getLogger(__name__)


@dataclass
class InvoiceRegisterData:
    """Container for the register output.

    Attributes:
        register: One row per invoice
        line_items: One row per invoice line
    """

    register: pd.DataFrame
    line_items: pd.DataFrame


class InvoiceRegisterGenerator:
    """Generate invoice register DataFrames for a project.

    Example:
        >>> generator = InvoiceRegisterGenerator(store, "prj_1")
        >>> data = generator.generate()
        >>> list(data.register.columns)[:3]
        ['Invoice ID', 'Number', 'Status']
    """

    REGISTER_COLUMNS = [
        "Invoice ID",
        "Number",
        "Status",
        "Method",
        "Created",
        "Due Date",
        "Subtotal",
        "Tax",
        "Total",
        "Paid",
        "Outstanding",
    ]

    LINE_ITEM_COLUMNS = [
        "Invoice ID",
        "Number",
        "Line",
        "Description",
        "Quantity",
        "Rate",
        "Amount",
        "Time Entries",
        "Expenses",
        "Milestone",
    ]

    def __init__(self, store: RecordStore, project_id: str):
        """Initialize with a store and the project to report on.

        Args:
            store: Record store holding the invoices
            project_id: Project whose invoices are listed
        """
        self.store = store
        self.project_id = project_id

    def generate(self) -> InvoiceRegisterData:
        """Generate the register and line item DataFrames."""
        invoices = self._invoices()
        return InvoiceRegisterData(
            register=self._generate_register(invoices),
            line_items=self._generate_line_items(invoices),
        )

    def _invoices(self) -> List[Invoice]:
        invoices = [
            Invoice.from_record(record)
            for record in self.store.list_by(INVOICES, project_id=self.project_id)
        ]
        return sorted(invoices, key=lambda invoice: invoice.created_at)

    def _paid_by_invoice(self, invoices: List[Invoice]) -> Dict[str, int]:
        return {
            invoice.id: sum(
                record["amount"]
                for record in self.store.list_by(PAYMENTS, invoice_id=invoice.id)
            )
            for invoice in invoices
        }

    def _generate_register(self, invoices: List[Invoice]) -> pd.DataFrame:
        if not invoices:
            return pd.DataFrame(columns=self.REGISTER_COLUMNS)

        paid = self._paid_by_invoice(invoices)
        rows = []
        for invoice in invoices:
            amount_paid = paid[invoice.id]
            rows.append(
                {
                    "Invoice ID": invoice.id,
                    "Number": invoice.number or "",
                    "Status": invoice.status.value,
                    "Method": invoice.method.value,
                    "Created": invoice.created_at.strftime("%Y-%m-%d"),
                    "Due Date": invoice.due_date.strftime("%Y-%m-%d"),
                    "Subtotal": invoice.subtotal,
                    "Tax": invoice.tax,
                    "Total": invoice.total,
                    "Paid": amount_paid,
                    "Outstanding": self._outstanding(invoice, amount_paid),
                }
            )

        return pd.DataFrame(rows, columns=self.REGISTER_COLUMNS)

    @staticmethod
    def _outstanding(invoice: Invoice, amount_paid: int) -> int:
        if invoice.status == InvoiceStatus.VOID:
            return 0
        return max(invoice.total - amount_paid, 0)

    def _generate_line_items(self, invoices: List[Invoice]) -> pd.DataFrame:
        rows = []
        for invoice in invoices:
            items = sorted(
                (
                    InvoiceLineItem.from_record(record)
                    for record in self.store.list_by(
                        INVOICE_LINE_ITEMS, invoice_id=invoice.id
                    )
                ),
                key=lambda item: item.sort_order,
            )
            for position, item in enumerate(items, start=1):
                rows.append(
                    {
                        "Invoice ID": invoice.id,
                        "Number": invoice.number or "",
                        "Line": position,
                        "Description": item.description,
                        "Quantity": item.quantity,
                        "Rate": item.rate,
                        "Amount": item.amount,
                        "Time Entries": len(item.time_entry_ids),
                        "Expenses": len(item.expense_ids),
                        "Milestone": item.milestone_id or "",
                    }
                )

        if not rows:
            return pd.DataFrame(columns=self.LINE_ITEM_COLUMNS)
        return pd.DataFrame(rows, columns=self.LINE_ITEM_COLUMNS)

    def totals(self, register: Optional[pd.DataFrame] = None) -> Dict[str, int]:
        """Sum the money columns of the register, leaving out Void invoices."""
        if register is None:
            register = self._generate_register(self._invoices())
        active = register[register["Status"] != InvoiceStatus.VOID.value]
        return {
            column: int(active[column].sum())
            for column in ("Subtotal", "Tax", "Total", "Paid", "Outstanding")
        }

    def to_csv(
        self, path: Union[str, Path], include_line_items: bool = False
    ) -> Path:
        """Write the register (and optionally the line items) as CSV.

        Line items go to a sibling file named ``<stem>_lines.csv``.

        Returns:
            Path of the register file
        """
        data = self.generate()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data.register.to_csv(path, index=False)
        if include_line_items:
            lines_path = path.with_name(f"{path.stem}_lines{path.suffix}")
            data.line_items.to_csv(lines_path, index=False)
        logger.info(
            f"Exported {len(data.register)} invoice(s) for {self.project_id} to {path}"
        )
        return path
