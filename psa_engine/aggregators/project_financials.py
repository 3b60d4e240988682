"""Project financial rollups and the closure gate.

This module aggregates a project's activity into:
- Budget burn: approved cost against the budget, with a health level
- Project metrics: revenue, cost, profit, margin and durations
- Closure checklist: hard gates that block closing, soft warnings that
  do not, and the count of bookings still ahead

Costs use each user's internal cost rate, never the client bill rate, and
expenses count at cost before markup.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional

from psa_engine.calculators.money import (
    format_cents,
    multiply_cents,
    ratio_percent,
    round_half_up,
    sum_hours,
    to_decimal,
)
from psa_engine.config.settings import PsaEngineConfig, get_config
from psa_engine.exceptions import InvalidStateError
from psa_engine.models.activity import Expense, TimeEntry
from psa_engine.models.enums import (
    ApprovalStatus,
    InvoiceStatus,
    ProjectStatus,
    TaskStatus,
)
from psa_engine.models.invoice import Invoice, ProjectMetricsSnapshot
from psa_engine.models.project import Booking, Budget, Project, Task, User
from psa_engine.store.record_store import (
    BOOKINGS,
    BUDGETS,
    EXPENSES,
    INVOICES,
    PAYMENTS,
    PROJECT_METRICS,
    PROJECTS,
    TASKS,
    TIME_ENTRIES,
    USERS,
    RecordStore,
)
from psa_engine.utils.logging_utils import LogContext, log_function_call
from psa_engine.validators.business_validators import BusinessRuleValidators
from psa_engine.validators.validation_report import (
    ValidationReport,
    ValidationSeverity,
)

logger = logging.getLogger(__name__)

# Records whose cost counts against the budget
COST_STATUSES = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.LOCKED})

# Records that block project closure
UNAPPROVED_STATUSES = frozenset(
    {ApprovalStatus.DRAFT, ApprovalStatus.SUBMITTED, ApprovalStatus.REJECTED}
)

CLOSED_TASK_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.ON_HOLD})

SETTLED_INVOICE_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID})

NEVER_REVENUE = frozenset({InvoiceStatus.VOID, InvoiceStatus.DRAFT})

CLOSE_OUTCOMES = {
    "completed": ProjectStatus.COMPLETED,
    "cancelled": ProjectStatus.CANCELLED,
    "on_hold": ProjectStatus.ON_HOLD,
}

WARNING_GREEN = "green"
WARNING_YELLOW = "yellow"
WARNING_RED = "red"

_SECONDS_PER_DAY = Decimal(86_400)


@dataclass
class BudgetBurn:
    """Budget consumption for a project.

    Attributes:
        project_id: Project measured
        budget_amount: Budget total in cents (0 without a budget)
        time_cost: Sum of round(hours x cost rate) over approved time
        expense_cost: Sum of approved expense amounts, before markup
        total_cost: time_cost + expense_cost
        burn_rate: round(total_cost / budget x 100), 0 without a budget
        remaining: budget_amount - total_cost
        warning_level: green, yellow (past warning threshold) or red
            (past overrun threshold)
        budget_ok: False once the overrun threshold is passed
        users_missing_cost_rate: Contributors whose cost rate is unset
    """

    project_id: str
    budget_amount: int
    time_cost: int
    expense_cost: int
    total_cost: int
    burn_rate: int
    remaining: int
    warning_level: str
    budget_ok: bool
    users_missing_cost_rate: List[str] = field(default_factory=list)


@dataclass
class ProjectMetrics:
    """Financial summary of a project as of ``close_date``."""

    project_id: str
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
    planned_duration_days: Optional[int]
    total_hours: float
    billable_hours: float


@dataclass
class ClosureChecklist:
    """Closure readiness of a project.

    ``can_close`` is False while any hard gate fails. ``warnings`` lists
    the messages of failed gates and soft warnings; future bookings are
    informational only and counted in ``future_bookings``.
    """

    project_id: str
    can_close: bool
    incomplete_tasks: int
    unapproved_time_entries: int
    unapproved_expenses: int
    uninvoiced_time_entries: int
    uninvoiced_expenses: int
    unpaid_invoices: int
    unpaid_amount: int
    future_bookings: int
    warnings: List[str]
    report: ValidationReport

    @property
    def all_tasks_complete(self) -> bool:
        return self.incomplete_tasks == 0

    @property
    def all_items_invoiced(self) -> bool:
        return self.uninvoiced_time_entries == 0 and self.uninvoiced_expenses == 0

    @property
    def all_invoices_paid(self) -> bool:
        return self.unpaid_invoices == 0


def _days_between(start: dt.datetime, end: dt.datetime) -> int:
    seconds = to_decimal((end - start).total_seconds())
    return round_half_up(seconds / _SECONDS_PER_DAY)


class ProjectFinancials:
    """Computes project rollups from the record store.

    Args:
        store: Record store
        config: Engine configuration (defaults to the global config)
        clock: Callable returning the current time
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[PsaEngineConfig] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self._clock = clock or dt.datetime.now

    # ------------------------------------------------------------------ loading

    def _project(self, project_id: str) -> Project:
        return Project.from_record(self.store.require(PROJECTS, project_id))

    def _budget_amount(self, project: Project) -> int:
        if not project.budget_id:
            return 0
        record = self.store.get(BUDGETS, project.budget_id)
        return Budget.from_record(record).total_amount if record else 0

    def _time_entries(self, project_id: str) -> List[TimeEntry]:
        return [
            TimeEntry.from_record(record)
            for record in self.store.list_by(TIME_ENTRIES, project_id=project_id)
        ]

    def _expenses(self, project_id: str) -> List[Expense]:
        return [
            Expense.from_record(record)
            for record in self.store.list_by(EXPENSES, project_id=project_id)
        ]

    def _invoices(self, project_id: str) -> List[Invoice]:
        return [
            Invoice.from_record(record)
            for record in self.store.list_by(INVOICES, project_id=project_id)
        ]

    def _users(self, user_ids: Iterable[str]) -> Dict[str, Optional[User]]:
        users: Dict[str, Optional[User]] = {}
        for user_id in user_ids:
            if user_id not in users:
                record = self.store.get(USERS, user_id)
                users[user_id] = User.from_record(record) if record else None
        return users

    def _warning_level(self, total_cost: int, budget_amount: int) -> str:
        if budget_amount <= 0:
            return WARNING_RED if total_cost > 0 else WARNING_GREEN
        fraction = to_decimal(total_cost) / to_decimal(budget_amount)
        if fraction > to_decimal(self.config.budget_overrun_threshold):
            return WARNING_RED
        if fraction > to_decimal(self.config.budget_warning_threshold):
            return WARNING_YELLOW
        return WARNING_GREEN

    # ------------------------------------------------------------------ rollups

    def budget_burn(self, project_id: str) -> BudgetBurn:
        """Approved cost against the project budget.

        Example:
            10 approved hours at a $50/hr cost rate on a $10,000 budget:

            >>> burn = financials.budget_burn("prj_1")
            >>> burn.time_cost, burn.burn_rate
            (50000, 5)
        """
        project = self._project(project_id)
        budget_amount = self._budget_amount(project)

        entries = [e for e in self._time_entries(project_id) if e.status in COST_STATUSES]
        users = self._users(entry.user_id for entry in entries)

        time_cost = 0
        for entry in entries:
            user = users.get(entry.user_id)
            time_cost += multiply_cents(entry.hours, user.cost_rate if user else 0)

        expense_cost = sum(
            expense.amount
            for expense in self._expenses(project_id)
            if expense.status in COST_STATUSES
        )
        total_cost = time_cost + expense_cost

        report = ValidationReport()
        BusinessRuleValidators.validate_cost_rates(
            [user for user in users.values() if user is not None], report
        )
        missing = [
            issue.context["user_id"] for issue in report.get_warnings() if issue.context
        ]
        missing.extend(user_id for user_id, user in users.items() if user is None)

        warning_level = self._warning_level(total_cost, budget_amount)
        burn = BudgetBurn(
            project_id=project_id,
            budget_amount=budget_amount,
            time_cost=time_cost,
            expense_cost=expense_cost,
            total_cost=total_cost,
            burn_rate=ratio_percent(total_cost, budget_amount),
            remaining=budget_amount - total_cost,
            warning_level=warning_level,
            budget_ok=warning_level != WARNING_RED,
            users_missing_cost_rate=missing,
        )
        if warning_level != WARNING_GREEN:
            logger.warning(
                f"Project {project_id} budget burn at {burn.burn_rate}% ({warning_level})",
                extra={"project_id": project_id, "burn_rate": burn.burn_rate},
            )
        return burn

    def project_metrics(
        self,
        project_id: str,
        close_date: Optional[dt.datetime] = None,
        *,
        recognized_statuses: Iterable[InvoiceStatus] = (InvoiceStatus.PAID,),
    ) -> ProjectMetrics:
        """Revenue, cost, profit and duration of a project.

        Only Paid invoices count as revenue unless ``recognized_statuses``
        widens the policy; Void and Draft invoices never count.

        Args:
            project_id: Project to measure
            close_date: Reference date for the duration (defaults to now)
            recognized_statuses: Invoice statuses recognized as revenue
        """
        close_date = close_date or self._clock()
        project = self._project(project_id)
        burn = self.budget_burn(project_id)

        recognized = {InvoiceStatus(s) for s in recognized_statuses} - NEVER_REVENUE
        total_revenue = sum(
            invoice.total
            for invoice in self._invoices(project_id)
            if invoice.status in recognized
        )

        counted = [e for e in self._time_entries(project_id) if e.status in COST_STATUSES]
        profit = total_revenue - burn.total_cost

        budget_variance = 0.0
        if burn.budget_amount > 0:
            budget_variance = float(
                (to_decimal(burn.total_cost) * 100 / to_decimal(burn.budget_amount))
                .quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            )

        return ProjectMetrics(
            project_id=project_id,
            close_date=close_date,
            total_revenue=total_revenue,
            total_cost=burn.total_cost,
            time_cost=burn.time_cost,
            expense_cost=burn.expense_cost,
            profit=profit,
            profit_margin=ratio_percent(profit, total_revenue),
            budget_amount=burn.budget_amount,
            budget_variance=budget_variance,
            duration_days=_days_between(project.start_date, close_date),
            planned_duration_days=(
                _days_between(project.start_date, project.end_date)
                if project.end_date
                else None
            ),
            total_hours=sum_hours(e.hours for e in counted),
            billable_hours=sum_hours(e.hours for e in counted if e.billable),
        )

    def closure_checklist(
        self, project_id: str, now: Optional[dt.datetime] = None
    ) -> ClosureChecklist:
        """Evaluate whether a project may be closed.

        Hard gates (block closing): tasks not Done or OnHold; time entries
        or expenses still Draft, Submitted or Rejected.

        Soft warnings: approved billable items without an invoice; invoices
        neither Paid nor Void, with the amount still outstanding.

        Informational: bookings starting after ``now``.
        """
        now = now or self._clock()
        self._project(project_id)
        report = ValidationReport()

        tasks = [
            Task.from_record(record)
            for record in self.store.list_by(TASKS, project_id=project_id)
        ]
        incomplete = [t for t in tasks if t.status not in CLOSED_TASK_STATUSES]
        if incomplete:
            report.add_error(
                "tasks",
                f"{len(incomplete)} task(s) not done or on hold",
                len(incomplete),
                context={"task_ids": ",".join(t.id for t in incomplete)},
            )

        entries = self._time_entries(project_id)
        unapproved_entries = [e for e in entries if e.status in UNAPPROVED_STATUSES]
        if unapproved_entries:
            report.add_error(
                "time_entries",
                f"{len(unapproved_entries)} time entry(ies) not approved",
                len(unapproved_entries),
            )

        expenses = self._expenses(project_id)
        unapproved_expenses = [e for e in expenses if e.status in UNAPPROVED_STATUSES]
        if unapproved_expenses:
            report.add_error(
                "expenses",
                f"{len(unapproved_expenses)} expense(s) not approved",
                len(unapproved_expenses),
            )

        uninvoiced_entries = [
            e for e in entries
            if e.billable and e.status in COST_STATUSES and not e.invoice_id
        ]
        uninvoiced_expenses = [
            e for e in expenses
            if e.billable and e.status in COST_STATUSES and not e.invoice_id
        ]
        uninvoiced = len(uninvoiced_entries) + len(uninvoiced_expenses)
        if uninvoiced:
            report.add_warning(
                "invoicing", f"{uninvoiced} billable item(s) not invoiced", uninvoiced
            )

        # Everything except Paid and Void is unpaid, open Drafts included
        unpaid = [
            invoice for invoice in self._invoices(project_id)
            if invoice.status not in SETTLED_INVOICE_STATUSES
        ]
        unpaid_amount = 0
        for invoice in unpaid:
            paid = sum(
                record["amount"]
                for record in self.store.list_by(PAYMENTS, invoice_id=invoice.id)
            )
            unpaid_amount += invoice.total - paid
        if unpaid:
            report.add_warning(
                "invoices",
                f"{len(unpaid)} invoice(s) unpaid ({format_cents(unpaid_amount)} outstanding)",
                unpaid_amount,
            )

        future = [
            booking for booking in self._bookings(project_id) if booking.start_date > now
        ]
        if future:
            report.add_info(
                "bookings",
                f"{len(future)} future booking(s) will remain until cancelled",
                len(future),
            )

        return ClosureChecklist(
            project_id=project_id,
            can_close=report.is_valid(),
            incomplete_tasks=len(incomplete),
            unapproved_time_entries=len(unapproved_entries),
            unapproved_expenses=len(unapproved_expenses),
            uninvoiced_time_entries=len(uninvoiced_entries),
            uninvoiced_expenses=len(uninvoiced_expenses),
            unpaid_invoices=len(unpaid),
            unpaid_amount=unpaid_amount,
            future_bookings=len(future),
            warnings=report.messages(ValidationSeverity.WARNING),
            report=report,
        )

    def _bookings(self, project_id: str) -> List[Booking]:
        return [
            Booking.from_record(record)
            for record in self.store.list_by(BOOKINGS, project_id=project_id)
        ]

    # ------------------------------------------------------------------ actions

    def cancel_future_bookings(
        self, project_id: str, now: Optional[dt.datetime] = None
    ) -> int:
        """Delete bookings that start strictly after ``now``.

        Returns:
            Number of bookings deleted
        """
        now = now or self._clock()
        with LogContext(project_id=project_id), self.store.transaction():
            future = [
                booking for booking in self._bookings(project_id)
                if booking.start_date > now
            ]
            for booking in future:
                self.store.delete(BOOKINGS, booking.id)
        if future:
            logger.info(f"Cancelled {len(future)} future booking(s) on {project_id}")
        return len(future)

    def create_metrics_snapshot(
        self,
        project_id: str,
        closed_by: str,
        close_date: Optional[dt.datetime] = None,
    ) -> ProjectMetricsSnapshot:
        """Store the project's metrics as an immutable snapshot.

        Raises:
            InvalidStateError: If a snapshot already exists for the project
        """
        with LogContext(project_id=project_id), self.store.transaction():
            if self.store.list_by(PROJECT_METRICS, project_id=project_id):
                raise InvalidStateError(
                    f"Metrics snapshot already exists for project {project_id}",
                    recovery_hint="Snapshots are immutable; read the existing one",
                    context={"project_id": project_id},
                )

            metrics = self.project_metrics(project_id, close_date)
            snapshot = ProjectMetricsSnapshot(
                project_id=project_id,
                closed_by=closed_by,
                close_date=metrics.close_date,
                total_revenue=metrics.total_revenue,
                total_cost=metrics.total_cost,
                time_cost=metrics.time_cost,
                expense_cost=metrics.expense_cost,
                profit=metrics.profit,
                profit_margin=metrics.profit_margin,
                budget_amount=metrics.budget_amount,
                budget_variance=metrics.budget_variance,
                duration_days=metrics.duration_days,
                planned_duration_days=metrics.planned_duration_days,
                total_hours=metrics.total_hours,
                billable_hours=metrics.billable_hours,
            )
            snapshot_id = self.store.insert(PROJECT_METRICS, snapshot.to_record())
            return snapshot.model_copy(update={"id": snapshot_id})

    @log_function_call(level="INFO")
    def close_project(
        self,
        project_id: str,
        closed_by: str,
        close_date: Optional[dt.datetime] = None,
        *,
        outcome: str = "completed",
    ) -> Project:
        """Close a project once the checklist allows it.

        Snapshots the metrics and sets the final status.

        Raises:
            InvalidStateError: If a hard gate fails, the outcome is unknown,
                or the project is already closed
        """
        if outcome not in CLOSE_OUTCOMES:
            raise InvalidStateError(
                f"Unknown closure outcome '{outcome}'",
                context={"outcome": outcome, "valid": sorted(CLOSE_OUTCOMES)},
            )

        close_date = close_date or self._clock()
        with LogContext(project_id=project_id), self.store.transaction():
            project = self._project(project_id)
            if project.closed_at is not None:
                raise InvalidStateError(
                    f"Project {project_id} is already closed",
                    context={"project_id": project_id, "status": project.status.value},
                )

            checklist = self.closure_checklist(project_id, now=close_date)
            if not checklist.can_close:
                blockers = [issue.message for issue in checklist.report.get_errors()]
                raise InvalidStateError(
                    f"Project {project_id} cannot be closed: {'; '.join(blockers)}",
                    recovery_hint="Resolve the blocking items and run the checklist again",
                    context={"project_id": project_id, "blockers": blockers},
                )

            self.create_metrics_snapshot(project_id, closed_by, close_date)
            self.store.patch(
                PROJECTS,
                project_id,
                {"status": CLOSE_OUTCOMES[outcome], "closed_at": close_date},
            )
            for message in checklist.warnings:
                logger.warning(f"Closed {project_id} with open item: {message}")
            return self._project(project_id)
