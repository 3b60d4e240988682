"""Billing calculator for the four invoicing methods.

This module turns already-loaded, already-approved source records into
invoice line items and totals:
- Time and materials: approved billable hours grouped by service, plus
  approved billable expenses with markup
- Fixed fee: one line for a percentage, an explicit amount, or the
  remaining budget
- Milestone: one line for a completed, uninvoiced milestone
- Recurring: a retainer base line plus an overage line for hours beyond
  the included allowance

Every function here is pure. Loading records and persisting invoices is
the invoice service's job.
"""

import datetime as dt
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from psa_engine.calculators.money import (
    apply_markup,
    format_rate,
    multiply_cents,
    percentage_of,
    sum_hours,
    to_decimal,
)
from psa_engine.exceptions import AlreadyInvoicedError, InvalidStateError
from psa_engine.models.activity import Expense, TimeEntry
from psa_engine.models.enums import ApprovalStatus, InvoiceMethod
from psa_engine.models.project import Budget, Milestone, Service
from psa_engine.validators.business_validators import BusinessRuleValidators
from psa_engine.validators.validation_report import ValidationReport

DEFAULT_SERVICE_DESCRIPTION = "Professional Services"
DEFAULT_FIXED_FEE_DESCRIPTION = "Fixed Fee Services"
DEFAULT_RETAINER_DESCRIPTION = "Monthly Retainer"

GROUP_BY_SERVICE = "service"
GROUP_BY_ENTRY = "entry"


@dataclass
class LineItemDraft:
    """A computed invoice line before it is stored.

    Attributes:
        description: Line text shown on the invoice
        quantity: Hours, or 1 for flat lines
        rate: Unit price in cents
        amount: Line total in cents
        time_entry_ids: Time entries billed by this line
        expense_ids: Expenses billed by this line
        milestone_id: Milestone billed by this line
    """

    description: str
    quantity: float
    rate: int
    amount: int
    time_entry_ids: List[str] = field(default_factory=list)
    expense_ids: List[str] = field(default_factory=list)
    milestone_id: Optional[str] = None


@dataclass
class InvoiceTotals:
    subtotal: int
    tax: int
    total: int


@dataclass
class BillingResult:
    """Line items and totals produced for one invoice.

    Example:
        >>> result = calculate_fixed_fee(budget, percentage=25)
        >>> len(result.line_items), result.total
        (1, 2500000)
    """

    method: InvoiceMethod
    line_items: List[LineItemDraft]
    subtotal: int
    tax: int
    total: int

    @property
    def is_empty(self) -> bool:
        return not self.line_items

    @property
    def time_entry_ids(self) -> List[str]:
        return [i for line in self.line_items for i in line.time_entry_ids]

    @property
    def expense_ids(self) -> List[str]:
        return [i for line in self.line_items for i in line.expense_ids]


def calculate_totals(lines: Iterable[LineItemDraft], tax: int = 0) -> InvoiceTotals:
    """``subtotal = sum of amounts``; ``total = subtotal + tax``."""
    if tax < 0:
        raise InvalidStateError("Tax cannot be negative", context={"tax": tax})
    subtotal = sum(line.amount for line in lines)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def _result(method: InvoiceMethod, lines: List[LineItemDraft], tax: int) -> BillingResult:
    totals = calculate_totals(lines, tax)
    return BillingResult(
        method=method,
        line_items=lines,
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
    )


def _in_window(
    day: dt.date, start: Optional[dt.date], end: Optional[dt.date]
) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def billable_time_entries(
    entries: Iterable[TimeEntry],
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> List[TimeEntry]:
    """Approved, billable, not yet invoiced entries inside the date window.

    Anything else is excluded outright, never billed at zero.
    """
    selected = [
        entry
        for entry in entries
        if entry.status == ApprovalStatus.APPROVED
        and entry.billable
        and entry.invoice_id is None
        and _in_window(entry.date, start, end)
    ]
    return sorted(selected, key=lambda entry: entry.date)


def billable_expenses(
    expenses: Iterable[Expense],
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> List[Expense]:
    """Approved, billable, not yet invoiced expenses inside the date window."""
    selected = [
        expense
        for expense in expenses
        if expense.status == ApprovalStatus.APPROVED
        and expense.billable
        and expense.invoice_id is None
        and _in_window(expense.date, start, end)
    ]
    return sorted(selected, key=lambda expense: expense.date)


def expense_billed_amount(expense: Expense) -> int:
    """``round(amount x (1 + markup_rate))``."""
    return apply_markup(expense.amount, expense.markup_rate)


def _time_lines_by_service(
    entries: List[TimeEntry], services: Dict[str, Service], default_rate: int
) -> List[LineItemDraft]:
    groups: "OrderedDict[Optional[str], List[TimeEntry]]" = OrderedDict()
    for entry in entries:
        key = entry.service_id if entry.service_id in services else None
        groups.setdefault(key, []).append(entry)

    lines = []
    for service_id, group in groups.items():
        service = services.get(service_id) if service_id else None
        rate = service.rate if service else default_rate
        hours = sum_hours(entry.hours for entry in group)
        lines.append(
            LineItemDraft(
                description=service.name if service else DEFAULT_SERVICE_DESCRIPTION,
                quantity=hours,
                rate=rate,
                amount=multiply_cents(hours, rate),
                time_entry_ids=[entry.id for entry in group],
            )
        )
    return lines


def _time_lines_by_entry(
    entries: List[TimeEntry], services: Dict[str, Service], default_rate: int
) -> List[LineItemDraft]:
    lines = []
    for entry in entries:
        service = services.get(entry.service_id) if entry.service_id else None
        rate = service.rate if service else default_rate
        name = service.name if service else DEFAULT_SERVICE_DESCRIPTION
        description = f"{name} - {entry.date.isoformat()}"
        if entry.notes:
            description = f"{description}: {entry.notes}"
        lines.append(
            LineItemDraft(
                description=description,
                quantity=entry.hours,
                rate=rate,
                amount=multiply_cents(entry.hours, rate),
                time_entry_ids=[entry.id],
            )
        )
    return lines


def calculate_time_and_materials(
    entries: Iterable[TimeEntry],
    expenses: Iterable[Expense],
    services: Iterable[Service],
    *,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    default_rate: int = 0,
    group_by: str = GROUP_BY_SERVICE,
    include_expenses: bool = True,
    tax: int = 0,
) -> BillingResult:
    """Bill approved hours and expenses.

    Time lines are grouped per service (or one per entry) with
    ``amount = round(total_hours x service rate)``. Entries without a known
    service bill at ``default_rate`` under "Professional Services". Each
    billable expense becomes its own line at its marked-up amount.

    Args:
        entries: Candidate time entries (filtered here)
        expenses: Candidate expenses (filtered here)
        services: Services whose rates apply
        start: First day of the billing period (inclusive)
        end: Last day of the billing period (inclusive)
        default_rate: Rate for entries without a service, in cents/hour
        group_by: ``"service"`` or ``"entry"``
        include_expenses: Whether to bill expenses
        tax: Caller-supplied tax in cents

    Returns:
        BillingResult with time lines first, then expense lines

    Example:
        Two approved entries of 8h and 6h on a $150/hr service and a $50
        expense at 10% markup:

        >>> result = calculate_time_and_materials(entries, [expense], [service])
        >>> result.total
        215500
    """
    if group_by not in (GROUP_BY_SERVICE, GROUP_BY_ENTRY):
        raise InvalidStateError(
            f"Unknown grouping '{group_by}'",
            context={"group_by": group_by, "valid": [GROUP_BY_SERVICE, GROUP_BY_ENTRY]},
        )

    service_map = {service.id: service for service in services}
    selected_entries = billable_time_entries(entries, start, end)

    if group_by == GROUP_BY_SERVICE:
        lines = _time_lines_by_service(selected_entries, service_map, default_rate)
    else:
        lines = _time_lines_by_entry(selected_entries, service_map, default_rate)

    if include_expenses:
        for expense in billable_expenses(expenses, start, end):
            billed = expense_billed_amount(expense)
            lines.append(
                LineItemDraft(
                    description=f"Expense: {expense.description}",
                    quantity=1,
                    rate=billed,
                    amount=billed,
                    expense_ids=[expense.id],
                )
            )

    return _result(InvoiceMethod.TIME_AND_MATERIALS, lines, tax)


def calculate_fixed_fee(
    budget: Budget,
    *,
    percentage: Optional[float] = None,
    amount: Optional[int] = None,
    already_invoiced: int = 0,
    description: str = DEFAULT_FIXED_FEE_DESCRIPTION,
    tax: int = 0,
) -> BillingResult:
    """Bill a fixed-fee budget as exactly one line.

    The amount is, in order of precedence: the explicit ``amount``,
    ``round(total_amount x percentage / 100)``, or the remaining budget
    ``total_amount - already_invoiced`` (never below zero).

    Raises:
        InvalidStateError: If the percentage is outside 0-100 or the
            explicit amount is negative
    """
    report = ValidationReport()
    BusinessRuleValidators.validate_percentage(percentage, report)
    if amount is not None and amount < 0:
        report.add_error("amount", "Fixed fee amount cannot be negative", amount)
    report.raise_if_invalid("Cannot calculate fixed fee")

    if amount is not None:
        line_amount = amount
        text = description
    elif percentage is not None:
        line_amount = percentage_of(budget.total_amount, percentage)
        text = f"{description} ({to_decimal(percentage).normalize():f}% of budget)"
    else:
        line_amount = max(budget.total_amount - already_invoiced, 0)
        text = description

    line = LineItemDraft(description=text, quantity=1, rate=line_amount, amount=line_amount)
    return _result(InvoiceMethod.FIXED_FEE, [line], tax)


def calculate_milestone(
    milestone: Milestone, project_id: Optional[str] = None, tax: int = 0
) -> BillingResult:
    """Bill one completed milestone at its amount.

    Raises:
        AlreadyInvoicedError: If the milestone is linked to an invoice
        InvalidStateError: If it is not completed or belongs to another
            project
    """
    if milestone.invoice_id is not None:
        raise AlreadyInvoicedError("Milestone", milestone.id, milestone.invoice_id)
    if project_id is not None and milestone.project_id != project_id:
        raise InvalidStateError(
            f"Milestone {milestone.id} does not belong to project {project_id}",
            context={"milestone_id": milestone.id, "project_id": project_id},
        )
    if milestone.completed_at is None:
        raise InvalidStateError(
            f"Milestone '{milestone.name}' is not completed",
            recovery_hint="Mark the milestone complete before invoicing it",
            context={"milestone_id": milestone.id},
        )

    line = LineItemDraft(
        description=f"Milestone: {milestone.name}",
        quantity=1,
        rate=milestone.amount,
        amount=milestone.amount,
        milestone_id=milestone.id,
    )
    return _result(InvoiceMethod.MILESTONE, [line], tax)


def calculate_recurring(
    base_amount: int,
    *,
    included_hours: float = 0,
    used_hours: float = 0,
    overage_rate: int = 0,
    description: str = DEFAULT_RETAINER_DESCRIPTION,
    tax: int = 0,
) -> BillingResult:
    """Bill a retainer period.

    One base line, plus an overage line of
    ``(used_hours - included_hours) x overage_rate`` only when more hours
    were used than included.

    Example:
        >>> result = calculate_recurring(
        ...     1_000_000, included_hours=50, used_hours=65, overage_rate=15000
        ... )
        >>> [line.amount for line in result.line_items]
        [1000000, 225000]
    """
    if base_amount < 0:
        raise InvalidStateError(
            "Retainer amount cannot be negative", context={"base_amount": base_amount}
        )

    lines = [
        LineItemDraft(
            description=description, quantity=1, rate=base_amount, amount=base_amount
        )
    ]

    overage = to_decimal(used_hours) - to_decimal(included_hours)
    if overage > 0:
        overage_hours = float(overage)
        lines.append(
            LineItemDraft(
                description=(
                    f"Additional hours ({overage_hours:g} hrs @ "
                    f"{format_rate(overage_rate)}/hr)"
                ),
                quantity=overage_hours,
                rate=overage_rate,
                amount=multiply_cents(overage, overage_rate),
            )
        )

    return _result(InvoiceMethod.RECURRING, lines, tax)
