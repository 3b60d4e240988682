"""Approvable activity records: time entries and expenses.

Both kinds share the approval fields of ``ApprovableRecord`` so a single
approval loop can drive them. The kind-specific quantity is ``hours`` for
time entries and ``amount`` for expenses.
"""

import datetime as dt
from typing import Optional

from pydantic import Field, field_validator

from psa_engine.models.base import BaseDataModel
from psa_engine.models.enums import ApprovalStatus, ExpenseType


class ApprovableRecord(BaseDataModel):
    """Fields common to every record that passes through approval.

    Attributes:
        organization_id: Owning organization
        project_id: Project the activity is booked against
        user_id: Submitter; reviewers must differ from this user
        status: Approval status
        submitted_at: Last submission time
        approved_by: Reviewer who approved
        approved_at: Approval time
        rejected_by: Reviewer who last rejected
        rejected_at: Last rejection time
        rejection_comments: Reviewer feedback, cleared on approve and revise
        revision_count: Number of rejections so far
        escalated_to_admin: Set once the revision limit is reached
        invoice_id: Finalized invoice that locked this record
    """

    organization_id: str
    project_id: str
    user_id: str
    billable: bool = True
    status: ApprovalStatus = ApprovalStatus.DRAFT
    submitted_at: Optional[dt.datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[dt.datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[dt.datetime] = None
    rejection_comments: Optional[str] = None
    revision_count: int = Field(default=0, ge=0)
    escalated_to_admin: bool = False
    invoice_id: Optional[str] = None


class TimeEntry(ApprovableRecord):
    """Hours worked by one user on one project and day.

    Example:
        >>> entry = TimeEntry(
        ...     organization_id="org-1",
        ...     project_id="p-1",
        ...     user_id="u-1",
        ...     date=dt.date(2024, 3, 4),
        ...     hours=7.5,
        ... )
        >>> entry.status
        <ApprovalStatus.DRAFT: 'Draft'>
    """

    service_id: Optional[str] = None
    task_id: Optional[str] = None
    date: dt.date
    hours: float = Field(..., gt=0, le=24)
    notes: Optional[str] = None


class Expense(ApprovableRecord):
    """A cost incurred on a project, optionally billed with markup.

    ``markup_rate`` is fractional: 0.15 bills the client 15% above cost.
    """

    date: dt.date
    type: ExpenseType = ExpenseType.OTHER
    description: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    currency: str = "USD"
    markup_rate: float = Field(default=0.0, ge=0)
    receipt_url: Optional[str] = None
    vendor: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description cannot be empty or whitespace")
        return v.strip()

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got {v!r}")
        return v.upper()
