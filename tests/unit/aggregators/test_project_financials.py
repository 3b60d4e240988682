"""Tests for project financial rollups and closure."""

import datetime as dt
import logging

import pytest

from psa_engine.aggregators.project_financials import (
    WARNING_GREEN,
    WARNING_RED,
    WARNING_YELLOW,
    ProjectFinancials,
)
from psa_engine.exceptions import InvalidStateError
from psa_engine.models.activity import Expense, TimeEntry
from psa_engine.models.enums import (
    ApprovalStatus,
    InvoiceMethod,
    InvoiceStatus,
    ProjectStatus,
    TaskStatus,
)
from psa_engine.models.invoice import Invoice, Payment
from psa_engine.models.project import Booking, Task
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
)
from psa_engine.validators.validation_report import ValidationSeverity


@pytest.fixture
def financials(store, test_config, clock):
    return ProjectFinancials(store, config=test_config, clock=clock)


@pytest.fixture
def add_time(store, seeded_project):
    def _add(hours, status=ApprovalStatus.APPROVED, user_id=None, **fields):
        return store.insert(
            TIME_ENTRIES,
            TimeEntry(
                organization_id=seeded_project.org,
                project_id=seeded_project.project_id,
                user_id=user_id or seeded_project.consultant,
                date=dt.date(2024, 3, 4),
                hours=hours,
                status=status,
                **fields,
            ).to_record(),
        )

    return _add


@pytest.fixture
def add_expense(store, seeded_project):
    def _add(amount, status=ApprovalStatus.APPROVED, **fields):
        return store.insert(
            EXPENSES,
            Expense(
                organization_id=seeded_project.org,
                project_id=seeded_project.project_id,
                user_id=seeded_project.consultant,
                date=dt.date(2024, 3, 5),
                description="Hardware",
                amount=amount,
                status=status,
                **fields,
            ).to_record(),
        )

    return _add


@pytest.fixture
def add_invoice(store, seeded_project):
    def _add(total, status):
        return store.insert(
            INVOICES,
            Invoice(
                organization_id=seeded_project.org,
                project_id=seeded_project.project_id,
                company_id="cmp_globex",
                method=InvoiceMethod.FIXED_FEE,
                status=status,
                subtotal=total,
                total=total,
                due_date=dt.date(2024, 4, 1),
                created_at=dt.datetime(2024, 3, 1, 9, 0),
            ).to_record(),
        )

    return _add


class TestBudgetBurn:
    """Tests for budget_burn."""

    def test_cost_from_cost_rate(self, financials, seeded_project, add_time):
        """Test 10 hours at a $50 cost rate on a $10,000 budget."""
        add_time(10)

        burn = financials.budget_burn(seeded_project.project_id)

        assert burn.time_cost == 50000
        assert burn.total_cost == 50000
        assert burn.burn_rate == 5
        assert burn.remaining == 950000
        assert burn.warning_level == WARNING_GREEN
        assert burn.budget_ok is True

    def test_only_approved_and_locked_count(self, financials, seeded_project, add_time):
        """Test unapproved time adds no cost."""
        add_time(2, status=ApprovalStatus.LOCKED, invoice_id="inv_1")
        add_time(4, status=ApprovalStatus.DRAFT)
        add_time(4, status=ApprovalStatus.SUBMITTED)
        add_time(4, status=ApprovalStatus.REJECTED)

        assert financials.budget_burn(seeded_project.project_id).time_cost == 10000

    def test_expenses_at_cost(self, financials, seeded_project, add_expense):
        """Test expenses count before markup."""
        add_expense(20000, markup_rate=0.5)
        add_expense(9999, status=ApprovalStatus.SUBMITTED)

        burn = financials.budget_burn(seeded_project.project_id)

        assert burn.expense_cost == 20000
        assert burn.total_cost == 20000

    @pytest.mark.parametrize(
        "cost,level",
        [
            (750000, WARNING_GREEN),
            (750001, WARNING_YELLOW),
            (900000, WARNING_YELLOW),
            (900001, WARNING_RED),
            (1_200_000, WARNING_RED),
        ],
    )
    def test_warning_levels(self, financials, seeded_project, add_expense, cost, level):
        """Test thresholds trigger strictly above 75% and 90%."""
        add_expense(cost)

        burn = financials.budget_burn(seeded_project.project_id)

        assert burn.warning_level == level
        assert burn.budget_ok is (level != WARNING_RED)

    def test_warning_logged(self, financials, seeded_project, add_expense, caplog):
        """Test a non-green level is logged."""
        add_expense(950000)
        with caplog.at_level(logging.WARNING):
            financials.budget_burn(seeded_project.project_id)
        assert "budget burn at 95% (red)" in caplog.text

    def test_zero_budget(self, store, financials, seeded_project, add_time):
        """Test any cost against a zero budget is red with a 0% burn rate."""
        store.patch(BUDGETS, seeded_project.budget_id, {"total_amount": 0})
        add_time(1)

        burn = financials.budget_burn(seeded_project.project_id)

        assert burn.burn_rate == 0
        assert burn.warning_level == WARNING_RED

    def test_zero_budget_without_cost(self, store, financials, seeded_project):
        """Test a zero budget with no cost stays green."""
        store.patch(BUDGETS, seeded_project.budget_id, {"total_amount": 0})
        assert financials.budget_burn(seeded_project.project_id).warning_level == WARNING_GREEN

    def test_users_missing_cost_rate(self, financials, seeded_project, add_time):
        """Test contributors without a cost rate are reported."""
        add_time(3, user_id=seeded_project.finance)
        add_time(1, user_id="u_unknown")

        burn = financials.budget_burn(seeded_project.project_id)

        assert burn.time_cost == 0
        assert sorted(burn.users_missing_cost_rate) == sorted(
            [seeded_project.finance, "u_unknown"]
        )


class TestProjectMetrics:
    """Tests for project_metrics."""

    @pytest.fixture
    def activity(self, seeded_project, add_time, add_expense, add_invoice):
        add_time(10)
        add_time(2, billable=False)
        add_time(3, status=ApprovalStatus.DRAFT)
        add_expense(20000)
        add_invoice(300000, InvoiceStatus.PAID)
        add_invoice(100000, InvoiceStatus.SENT)
        add_invoice(50000, InvoiceStatus.VOID)
        add_invoice(20000, InvoiceStatus.DRAFT)

    def test_paid_revenue_only(self, financials, seeded_project, activity):
        """Test revenue counts Paid invoices by default."""
        metrics = financials.project_metrics(
            seeded_project.project_id, dt.datetime(2024, 3, 31)
        )

        assert metrics.total_revenue == 300000
        assert metrics.time_cost == 60000
        assert metrics.expense_cost == 20000
        assert metrics.total_cost == 80000
        assert metrics.profit == 220000
        assert metrics.profit_margin == 73
        assert metrics.budget_variance == 8.0

    def test_widened_revenue_never_counts_void_or_draft(
        self, financials, seeded_project, activity
    ):
        """Test a wider policy still excludes Void and Draft invoices."""
        metrics = financials.project_metrics(
            seeded_project.project_id,
            dt.datetime(2024, 3, 31),
            recognized_statuses=list(InvoiceStatus),
        )
        assert metrics.total_revenue == 400000

    def test_hours_and_durations(self, financials, seeded_project, activity):
        """Test hours count approved work and durations round to days."""
        metrics = financials.project_metrics(
            seeded_project.project_id, dt.datetime(2024, 3, 31, 12, 0)
        )

        assert metrics.total_hours == 12
        assert metrics.billable_hours == 10
        assert metrics.duration_days == 91
        assert metrics.planned_duration_days == 90

    def test_no_revenue(self, financials, seeded_project, add_time):
        """Test the margin is zero without revenue."""
        add_time(1)
        metrics = financials.project_metrics(seeded_project.project_id)

        assert metrics.total_revenue == 0
        assert metrics.profit == -5000
        assert metrics.profit_margin == 0


class TestClosureChecklist:
    """Tests for closure_checklist."""

    def test_clean_project(self, financials, seeded_project):
        """Test a project with nothing open can close."""
        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is True
        assert checklist.warnings == []
        assert checklist.all_tasks_complete
        assert checklist.all_items_invoiced
        assert checklist.all_invoices_paid

    def test_open_task_blocks(self, store, financials, seeded_project):
        """Test unfinished tasks block closure; on-hold tasks do not."""
        for status in (TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD, TaskStatus.DONE):
            store.insert(
                TASKS,
                Task(project_id=seeded_project.project_id, name="Build", status=status).to_record(),
            )

        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is False
        assert checklist.incomplete_tasks == 1
        assert "1 task(s) not done or on hold" in checklist.warnings

    def test_unapproved_records_block(self, financials, seeded_project, add_time, add_expense):
        """Test draft time and rejected expenses block closure."""
        add_time(2, status=ApprovalStatus.DRAFT)
        add_expense(1000, status=ApprovalStatus.REJECTED)

        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is False
        assert checklist.report.messages(ValidationSeverity.ERROR) == [
            "1 time entry(ies) not approved",
            "1 expense(s) not approved",
        ]

    def test_uninvoiced_items_warn(self, financials, seeded_project, add_time, add_expense):
        """Test approved uninvoiced billable work only warns."""
        add_time(2)
        add_time(2, billable=False)
        add_expense(1000)
        add_time(1, status=ApprovalStatus.LOCKED, invoice_id="inv_1")

        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is True
        assert checklist.uninvoiced_time_entries == 1
        assert checklist.uninvoiced_expenses == 1
        assert checklist.warnings == ["2 billable item(s) not invoiced"]

    def test_unpaid_invoices_warn(self, store, financials, seeded_project, add_invoice):
        """Test unpaid invoices, drafts included, warn with the amount outstanding."""
        sent = add_invoice(215500, InvoiceStatus.SENT)
        add_invoice(10000, InvoiceStatus.DRAFT)
        add_invoice(99999, InvoiceStatus.PAID)
        add_invoice(55555, InvoiceStatus.VOID)
        store.insert(
            PAYMENTS,
            Payment(
                invoice_id=sent,
                organization_id=seeded_project.org,
                amount=15500,
                received_at=dt.datetime(2024, 3, 10),
            ).to_record(),
        )

        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is True
        assert checklist.unpaid_invoices == 2
        assert checklist.unpaid_amount == 210000
        assert checklist.warnings == ["2 invoice(s) unpaid ($2,100.00 outstanding)"]

    def test_future_bookings_are_info(self, store, financials, seeded_project, clock):
        """Test bookings after now are counted but do not warn."""
        for start in (dt.datetime(2024, 3, 1), dt.datetime(2024, 4, 1)):
            store.insert(
                BOOKINGS,
                Booking(
                    project_id=seeded_project.project_id,
                    user_id=seeded_project.consultant,
                    start_date=start,
                    end_date=start + dt.timedelta(days=5),
                ).to_record(),
            )

        checklist = financials.closure_checklist(seeded_project.project_id)

        assert checklist.can_close is True
        assert checklist.future_bookings == 1
        assert checklist.warnings == []
        assert checklist.report.messages() == [
            "1 future booking(s) will remain until cancelled"
        ]

    def test_cancel_future_bookings(self, store, financials, seeded_project):
        """Test only bookings starting after now are removed."""
        for start in (dt.datetime(2024, 3, 15, 10, 0), dt.datetime(2024, 5, 1)):
            store.insert(
                BOOKINGS,
                Booking(
                    project_id=seeded_project.project_id,
                    user_id=seeded_project.consultant,
                    start_date=start,
                    end_date=start + dt.timedelta(days=1),
                ).to_record(),
            )

        assert financials.cancel_future_bookings(seeded_project.project_id) == 1
        assert len(store.list_by(BOOKINGS)) == 1


class TestCloseProject:
    """Tests for close_project and snapshots."""

    def test_close(self, store, financials, seeded_project, add_time, clock):
        """Test closing sets the status and stores a snapshot."""
        add_time(10)

        project = financials.close_project(seeded_project.project_id, seeded_project.manager)

        assert project.status == ProjectStatus.COMPLETED
        assert project.closed_at == clock.now
        snapshots = store.list_by(PROJECT_METRICS, project_id=seeded_project.project_id)
        assert len(snapshots) == 1
        assert snapshots[0]["time_cost"] == 50000
        assert snapshots[0]["closed_by"] == seeded_project.manager

    def test_close_cancelled(self, financials, seeded_project):
        """Test a project can be closed as cancelled."""
        project = financials.close_project(
            seeded_project.project_id, seeded_project.manager, outcome="cancelled"
        )
        assert project.status == ProjectStatus.CANCELLED

    def test_blocked_close_changes_nothing(self, store, financials, seeded_project, add_time):
        """Test a failed gate leaves the project open and writes no snapshot."""
        add_time(1, status=ApprovalStatus.SUBMITTED)

        with pytest.raises(InvalidStateError, match="cannot be closed"):
            financials.close_project(seeded_project.project_id, seeded_project.manager)

        assert store.get(PROJECTS, seeded_project.project_id)["status"] == ProjectStatus.ACTIVE
        assert store.list_by(PROJECT_METRICS) == []

    def test_close_twice(self, financials, seeded_project):
        """Test a closed project cannot be closed again."""
        financials.close_project(seeded_project.project_id, seeded_project.manager)
        with pytest.raises(InvalidStateError, match="already closed"):
            financials.close_project(seeded_project.project_id, seeded_project.manager)

    def test_unknown_outcome(self, financials, seeded_project):
        """Test an unknown outcome is refused."""
        with pytest.raises(InvalidStateError, match="Unknown closure outcome"):
            financials.close_project(
                seeded_project.project_id, seeded_project.manager, outcome="archived"
            )

    def test_snapshot_written_once(self, financials, seeded_project):
        """Test a second snapshot is refused."""
        snapshot = financials.create_metrics_snapshot(
            seeded_project.project_id, seeded_project.manager
        )
        assert snapshot.id is not None

        with pytest.raises(InvalidStateError, match="already exists"):
            financials.create_metrics_snapshot(
                seeded_project.project_id, seeded_project.manager
            )
