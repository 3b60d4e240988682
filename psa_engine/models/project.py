"""Project delivery models.

This module defines the project and the records it owns by reference:
budget, services, milestones, tasks and resource bookings, plus the
users whose cost rates drive budget burn.
"""

import datetime as dt
from typing import Optional

from pydantic import Field, field_validator, model_validator

from psa_engine.models.base import BaseDataModel
from psa_engine.models.enums import (
    BookingType,
    BudgetType,
    ProjectStatus,
    TaskStatus,
)


def _strip_required(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty or whitespace")
    return value.strip()


class Project(BaseDataModel):
    """A delivery engagement for a client company.

    Attributes:
        organization_id: Owning organization
        company_id: Client company
        deal_id: Won deal the project came from, if any
        name: Project name
        status: Lifecycle status
        budget_id: Budget record
        manager_id: Project manager
        start_date: Actual start
        end_date: Planned end
        closed_at: When the project was closed

    Example:
        >>> project = Project(
        ...     organization_id="org-1",
        ...     company_id="c-1",
        ...     name="Website Redesign",
        ...     manager_id="u-1",
        ...     start_date=dt.datetime(2024, 1, 1),
        ...     end_date=dt.datetime(2024, 3, 31),
        ... )
        >>> project.status
        <ProjectStatus.PLANNING: 'Planning'>
    """

    organization_id: str
    company_id: str
    deal_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    status: ProjectStatus = ProjectStatus.PLANNING
    budget_id: Optional[str] = None
    manager_id: str
    start_date: dt.datetime
    end_date: Optional[dt.datetime] = None
    closed_at: Optional[dt.datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v, "name")

    @model_validator(mode="after")
    def validate_dates(self) -> "Project":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class Budget(BaseDataModel):
    """Project budget.

    Retainer budgets also carry the monthly allowance used by recurring
    invoices: ``included_hours`` and the ``overage_rate`` charged beyond it.
    """

    project_id: str
    organization_id: str
    type: BudgetType
    total_amount: int = Field(..., ge=0)
    included_hours: Optional[float] = Field(default=None, ge=0)
    overage_rate: Optional[int] = Field(default=None, ge=0)


class Service(BaseDataModel):
    """A billable service line with its hourly bill rate in cents."""

    budget_id: str
    name: str = Field(..., min_length=1)
    rate: int = Field(..., ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v, "name")


class User(BaseDataModel):
    """Team member. ``cost_rate`` is the internal hourly cost in cents."""

    organization_id: str
    name: str = Field(..., min_length=1)
    cost_rate: int = Field(default=0, ge=0)
    bill_rate: Optional[int] = Field(default=None, ge=0)


class Milestone(BaseDataModel):
    """A billable deliverable.

    A milestone is invoiceable once ``completed_at`` is set and stays linked
    to at most one invoice through ``invoice_id``.
    """

    project_id: str
    name: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    percentage: float = Field(default=0.0, ge=0, le=100)
    due_date: dt.date
    sort_order: int = 0
    completed_at: Optional[dt.datetime] = None
    invoice_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v, "name")

    @property
    def is_uninvoiced(self) -> bool:
        return self.completed_at is not None and self.invoice_id is None


class Task(BaseDataModel):
    project_id: str
    name: str = Field(..., min_length=1)
    status: TaskStatus = TaskStatus.TODO
    assignee_id: Optional[str] = None


class Booking(BaseDataModel):
    """Scheduled allocation of a user to a project."""

    project_id: str
    user_id: str
    start_date: dt.datetime
    end_date: dt.datetime
    hours_per_day: float = Field(default=8.0, gt=0, le=24)
    type: BookingType = BookingType.CONFIRMED

    @model_validator(mode="after")
    def validate_dates(self) -> "Booking":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
