"""End-to-end flow: won deal, approved work, paid invoice, closed project."""

import datetime as dt

import pytest

from psa_engine.aggregators.project_financials import WARNING_GREEN, ProjectFinancials
from psa_engine.exceptions import InvalidTransitionError, SelfApprovalForbiddenError
from psa_engine.models.enums import (
    ApprovalStatus,
    DealStage,
    InvoiceStatus,
    ProjectStatus,
    TaskStatus,
)
from psa_engine.models.project import Booking, Task
from psa_engine.services.invoice_service import InvoiceService
from psa_engine.store.record_store import BOOKINGS, PROJECT_METRICS, PROJECTS, TASKS
from psa_engine.workflow.approval_loop import expense_loop, time_entry_loop
from psa_engine.workflow.deals import DealService


class TestDealToClosureFlow:
    """Walk one engagement through every engine component."""

    @pytest.fixture
    def engine(self, store, test_config, clock):
        return {
            "deals": DealService(store, clock=clock),
            "time": time_entry_loop(store, test_config, clock),
            "expenses": expense_loop(store, test_config, clock),
            "invoices": InvoiceService(store, config=test_config, clock=clock),
            "financials": ProjectFinancials(store, config=test_config, clock=clock),
        }

    def test_full_lifecycle(self, store, engine, seeded_project, clock):
        """Test the happy path from Lead to a closed, profitable project."""
        deals = engine["deals"]
        deal = deals.create_deal(
            organization_id=seeded_project.org,
            name="Website Redesign",
            owner_id=seeded_project.manager,
            value=2_000_000,
        )
        with pytest.raises(InvalidTransitionError):
            deals.transition(deal.id, DealStage.PROPOSAL)
        for stage in (
            DealStage.QUALIFIED,
            DealStage.PROPOSAL,
            DealStage.NEGOTIATION,
            DealStage.WON,
        ):
            deal = deals.transition(deal.id, stage)
        assert deal.closed_at == clock.now
        store.patch(PROJECTS, seeded_project.project_id, {"deal_id": deal.id})

        # Time: one entry approved, one rejected then revised
        time = engine["time"]
        common = dict(
            organization_id=seeded_project.org,
            project_id=seeded_project.project_id,
            user_id=seeded_project.consultant,
            service_id=seeded_project.service_id,
        )
        first = time.create_draft(date=dt.date(2024, 3, 4), hours=8, **common)
        second = time.create_draft(date=dt.date(2024, 3, 5), hours=7, **common)
        time.submit(first.id)
        time.submit(second.id)

        with pytest.raises(SelfApprovalForbiddenError):
            time.approve(first.id, seeded_project.consultant)

        time.approve(first.id, seeded_project.manager)
        time.reject(second.id, seeded_project.manager, "Only six hours were agreed")
        time.revise(second.id, {"hours": 6, "notes": "Adjusted"}, resubmit=True)
        time.approve(second.id, seeded_project.manager)

        expenses = engine["expenses"]
        expense = expenses.create_draft(
            organization_id=seeded_project.org,
            project_id=seeded_project.project_id,
            user_id=seeded_project.consultant,
            date=dt.date(2024, 3, 5),
            description="Workshop supplies",
            amount=5000,
            markup_rate=0.10,
            receipt_url="https://files/supplies.pdf",
        )
        expenses.submit(expense.id)
        expenses.approve(expense.id, seeded_project.manager)

        financials = engine["financials"]
        burn = financials.budget_burn(seeded_project.project_id)
        assert (burn.time_cost, burn.expense_cost, burn.burn_rate) == (70000, 5000, 8)
        assert burn.warning_level == WARNING_GREEN

        # Invoice, deliver and collect
        invoices = engine["invoices"]
        draft = invoices.create_time_and_materials_invoice(seeded_project.project_id)
        assert draft.total == 215500

        checklist = financials.closure_checklist(seeded_project.project_id)
        assert checklist.can_close is True
        assert "1 invoice(s) unpaid ($2,155.00 outstanding)" in checklist.warnings

        result = invoices.finalize(draft.id, seeded_project.finance)
        assert result.number == "INV-2024-00001"
        assert time.get(first.id).status == ApprovalStatus.LOCKED

        invoices.mark_sent(draft.id)
        invoices.mark_viewed(draft.id)
        invoices.record_payment(draft.id, 215500)
        assert invoices.get_invoice(draft.id).status == InvoiceStatus.PAID

        # Close
        store.insert(
            TASKS,
            Task(
                project_id=seeded_project.project_id, name="Launch", status=TaskStatus.DONE
            ).to_record(),
        )
        store.insert(
            BOOKINGS,
            Booking(
                project_id=seeded_project.project_id,
                user_id=seeded_project.consultant,
                start_date=dt.datetime(2024, 4, 1),
                end_date=dt.datetime(2024, 4, 5),
            ).to_record(),
        )

        checklist = financials.closure_checklist(seeded_project.project_id)
        assert checklist.can_close is True
        assert checklist.warnings == []
        assert checklist.future_bookings == 1

        assert financials.cancel_future_bookings(seeded_project.project_id) == 1

        project = financials.close_project(seeded_project.project_id, seeded_project.manager)
        assert project.status == ProjectStatus.COMPLETED

        snapshot = store.list_by(PROJECT_METRICS, project_id=seeded_project.project_id)[0]
        assert snapshot["total_revenue"] == 215500
        assert snapshot["total_cost"] == 75000
        assert snapshot["profit"] == 140500
        assert snapshot["profit_margin"] == 65
        assert snapshot["budget_variance"] == 7.5
        assert snapshot["duration_days"] == 74
        assert snapshot["total_hours"] == 14

    def test_closure_blocked_by_pending_approval(self, engine, seeded_project):
        """Test submitted work keeps the project open until reviewed."""
        time = engine["time"]
        entry = time.create_draft(
            organization_id=seeded_project.org,
            project_id=seeded_project.project_id,
            user_id=seeded_project.consultant,
            date=dt.date(2024, 3, 4),
            hours=4,
        )
        time.submit(entry.id)

        checklist = engine["financials"].closure_checklist(seeded_project.project_id)
        assert checklist.can_close is False
        assert checklist.unapproved_time_entries == 1

        time.approve(entry.id, seeded_project.manager)
        assert engine["financials"].closure_checklist(seeded_project.project_id).can_close
