"""Closed status and type enumerations.

Every value is a ``str`` so records compare equal to their stored string
form and serialize to JSON without conversion.
"""

from enum import Enum


class DealStage(str, Enum):
    """Sales pipeline stage of a deal."""

    LEAD = "Lead"
    QUALIFIED = "Qualified"
    DISQUALIFIED = "Disqualified"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    WON = "Won"
    LOST = "Lost"


class ApprovalStatus(str, Enum):
    """Status of an approvable record (time entry or expense)."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    LOCKED = "Locked"


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    FINALIZED = "Finalized"
    SENT = "Sent"
    VIEWED = "Viewed"
    PAID = "Paid"
    VOID = "Void"


class InvoiceMethod(str, Enum):
    TIME_AND_MATERIALS = "TimeAndMaterials"
    FIXED_FEE = "FixedFee"
    MILESTONE = "Milestone"
    RECURRING = "Recurring"


class BudgetType(str, Enum):
    TIME_AND_MATERIALS = "TimeAndMaterials"
    FIXED_FEE = "FixedFee"
    MILESTONE = "Milestone"
    RETAINER = "Retainer"


class ProjectStatus(str, Enum):
    PLANNING = "Planning"
    ACTIVE = "Active"
    ON_HOLD = "OnHold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class TaskStatus(str, Enum):
    TODO = "Todo"
    IN_PROGRESS = "InProgress"
    REVIEW = "Review"
    DONE = "Done"
    ON_HOLD = "OnHold"


class BookingType(str, Enum):
    TENTATIVE = "Tentative"
    CONFIRMED = "Confirmed"
    TIME_OFF = "TimeOff"


class ExpenseType(str, Enum):
    TRAVEL = "Travel"
    SOFTWARE = "Software"
    MATERIALS = "Materials"
    SUBCONTRACTOR = "Subcontractor"
    OTHER = "Other"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BankTransfer"
    CARD = "Card"
    CHECK = "Check"
    CASH = "Cash"
    OTHER = "Other"
