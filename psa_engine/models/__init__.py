"""Data models for the PSA engine.

This package contains Pydantic models for all records the engine reads and
writes through the record store.
"""

from psa_engine.models.activity import ApprovableRecord, Expense, TimeEntry
from psa_engine.models.base import BaseDataModel
from psa_engine.models.deal import Deal
from psa_engine.models.enums import (
    ApprovalStatus,
    BookingType,
    BudgetType,
    DealStage,
    ExpenseType,
    InvoiceMethod,
    InvoiceStatus,
    PaymentMethod,
    ProjectStatus,
    TaskStatus,
)
from psa_engine.models.invoice import (
    Invoice,
    InvoiceLineItem,
    Payment,
    ProjectMetricsSnapshot,
)
from psa_engine.models.project import (
    Booking,
    Budget,
    Milestone,
    Project,
    Service,
    Task,
    User,
)

__all__ = [
    "ApprovableRecord",
    "ApprovalStatus",
    "BaseDataModel",
    "Booking",
    "BookingType",
    "Budget",
    "BudgetType",
    "Deal",
    "DealStage",
    "Expense",
    "ExpenseType",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceMethod",
    "InvoiceStatus",
    "Milestone",
    "Payment",
    "PaymentMethod",
    "Project",
    "ProjectMetricsSnapshot",
    "ProjectStatus",
    "Service",
    "Task",
    "TaskStatus",
    "TimeEntry",
    "User",
]
