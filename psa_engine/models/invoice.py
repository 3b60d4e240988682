"""Invoice, line item, payment and closure snapshot models."""

import datetime as dt
from typing import List, Optional

from pydantic import ConfigDict, Field, model_validator

from psa_engine.models.base import BaseDataModel
from psa_engine.models.enums import InvoiceMethod, InvoiceStatus, PaymentMethod


class Invoice(BaseDataModel):
    """A client invoice.

    ``number`` is assigned once, at finalization. ``subtotal`` and ``total``
    are kept in step with the line items while the invoice is a Draft.

    Attributes:
        organization_id: Owning organization (numbering scope)
        project_id: Billed project
        company_id: Billed client
        method: Billing method that produced the lines
        status: Lifecycle status
        subtotal: Sum of line amounts in cents
        tax: Caller-supplied tax in cents
        total: subtotal + tax
        number: Sequential number, e.g. INV-2024-00001
        due_date: Payment due date
        needs_review: Set when finalized without line items
    """

    organization_id: str
    project_id: str
    company_id: str
    method: InvoiceMethod
    status: InvoiceStatus = InvoiceStatus.DRAFT
    subtotal: int = 0
    tax: int = Field(default=0, ge=0)
    total: int = 0
    number: Optional[str] = None
    due_date: dt.date
    created_at: dt.datetime
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    finalized_at: Optional[dt.datetime] = None
    finalized_by: Optional[str] = None
    sent_at: Optional[dt.datetime] = None
    viewed_at: Optional[dt.datetime] = None
    paid_at: Optional[dt.datetime] = None
    voided_at: Optional[dt.datetime] = None
    voided_by: Optional[str] = None
    void_reason: Optional[str] = None
    notes: Optional[str] = None
    needs_review: bool = False

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT


class InvoiceLineItem(BaseDataModel):
    """One invoice line.

    ``amount`` normally equals round(quantity x rate) but is stored
    explicitly so a draft line can be overridden by hand. The id lists trace
    the line back to the records it bills; they drive locking on finalize.
    """

    invoice_id: str
    description: str = Field(..., min_length=1)
    quantity: float = Field(default=1.0, ge=0)
    rate: int = 0
    amount: int
    sort_order: int = 0
    time_entry_ids: List[str] = Field(default_factory=list)
    expense_ids: List[str] = Field(default_factory=list)
    milestone_id: Optional[str] = None


class Payment(BaseDataModel):
    invoice_id: str
    organization_id: str
    amount: int = Field(..., gt=0)
    received_at: dt.datetime
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: Optional[str] = None


class ProjectMetricsSnapshot(BaseDataModel):
    """Financial picture of a project frozen at closure.

    Snapshots are written once and never modified.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    closed_by: str
    close_date: dt.datetime
    total_revenue: int
    total_cost: int
    time_cost: int
    expense_cost: int
    profit: int
    profit_margin: int
    budget_amount: int
    budget_variance: float
    duration_days: int
    planned_duration_days: Optional[int] = None
    total_hours: float
    billable_hours: float

    @model_validator(mode="after")
    def validate_cost_split(self) -> "ProjectMetricsSnapshot":
        if self.time_cost + self.expense_cost != self.total_cost:
            raise ValueError("total_cost must equal time_cost + expense_cost")
        return self
