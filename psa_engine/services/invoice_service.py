"""Invoice lifecycle service.

Drafts invoices from approved activity with the billing calculator, lets
draft lines be edited, and moves invoices through

    Draft -> Finalized -> Sent -> Viewed -> Paid

with a Void exit from every state except Paid. Finalizing assigns the
sequential invoice number and locks every billed time entry and expense.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from psa_engine.calculators.billing_calculator import (
    GROUP_BY_SERVICE,
    BillingResult,
    calculate_fixed_fee,
    calculate_milestone,
    calculate_recurring,
    calculate_time_and_materials,
    calculate_totals,
)
from psa_engine.calculators.money import multiply_cents, sum_hours
from psa_engine.config.settings import PsaEngineConfig, get_config
from psa_engine.exceptions import (
    AlreadyFinalizedError,
    AlreadyInvoicedError,
    InvalidStateError,
    InvalidTransitionError,
    NotEditableError,
)
from psa_engine.models.activity import Expense, TimeEntry
from psa_engine.models.enums import (
    ApprovalStatus,
    BudgetType,
    InvoiceMethod,
    InvoiceStatus,
    PaymentMethod,
)
from psa_engine.models.invoice import Invoice, InvoiceLineItem, Payment
from psa_engine.models.project import Budget, Milestone, Project, Service
from psa_engine.store.record_store import (
    BUDGETS,
    EXPENSES,
    INVOICE_LINE_ITEMS,
    INVOICES,
    MILESTONES,
    PAYMENTS,
    PROJECTS,
    SERVICES,
    TIME_ENTRIES,
    RecordStore,
)
from psa_engine.utils.logging_utils import LogContext, log_function_call
from psa_engine.workflow.approval_loop import expense_loop, time_entry_loop

logger = logging.getLogger(__name__)

INVOICE_TRANSITIONS: Dict[InvoiceStatus, Tuple[InvoiceStatus, ...]] = {
    InvoiceStatus.DRAFT: (InvoiceStatus.FINALIZED, InvoiceStatus.VOID),
    InvoiceStatus.FINALIZED: (InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.VOID),
    InvoiceStatus.SENT: (InvoiceStatus.VIEWED, InvoiceStatus.PAID, InvoiceStatus.VOID),
    InvoiceStatus.VIEWED: (InvoiceStatus.PAID, InvoiceStatus.VOID),
    InvoiceStatus.PAID: (),
    InvoiceStatus.VOID: (),
}

FINALIZED_STATUSES = frozenset(
    {
        InvoiceStatus.FINALIZED,
        InvoiceStatus.SENT,
        InvoiceStatus.VIEWED,
        InvoiceStatus.PAID,
    }
)

PAYABLE_STATUSES = frozenset(
    {InvoiceStatus.FINALIZED, InvoiceStatus.SENT, InvoiceStatus.VIEWED}
)

EDITABLE_LINE_FIELDS = frozenset({"description", "quantity", "rate", "amount"})


@dataclass
class FinalizeResult:
    """What finalization changed.

    Attributes:
        invoice: The finalized invoice
        number: Assigned invoice number
        locked_time_entry_ids: Time entries moved to Locked
        locked_expense_ids: Expenses moved to Locked
        milestone_ids: Milestones stamped with the invoice id
        needs_review: True when the invoice has no line items
    """

    invoice: Invoice
    number: str
    locked_time_entry_ids: List[str] = field(default_factory=list)
    locked_expense_ids: List[str] = field(default_factory=list)
    milestone_ids: List[str] = field(default_factory=list)
    needs_review: bool = False


class InvoiceService:
    """Creates, edits and progresses invoices.

    Args:
        store: Record store
        config: Engine configuration (defaults to the global config)
        clock: Callable returning the current time

    Example:
        >>> service = InvoiceService(store)
        >>> draft = service.create_fixed_fee_invoice("prj_1", percentage=25)
        >>> result = service.finalize(draft.id, finalized_by="u_fin")
        >>> result.number
        'INV-2024-00001'
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
        self.time_entries = time_entry_loop(store, self.config, self._clock)
        self.expenses = expense_loop(store, self.config, self._clock)

    # ------------------------------------------------------------------ loading

    def get_invoice(self, invoice_id: str) -> Invoice:
        return Invoice.from_record(self.store.require(INVOICES, invoice_id))

    def get_line_items(self, invoice_id: str) -> List[InvoiceLineItem]:
        items = [
            InvoiceLineItem.from_record(record)
            for record in self.store.list_by(INVOICE_LINE_ITEMS, invoice_id=invoice_id)
        ]
        return sorted(items, key=lambda item: item.sort_order)

    def list_invoices(self, project_id: str) -> List[Invoice]:
        invoices = [
            Invoice.from_record(record)
            for record in self.store.list_by(INVOICES, project_id=project_id)
        ]
        return sorted(invoices, key=lambda invoice: invoice.created_at)

    def _project(self, project_id: str) -> Project:
        return Project.from_record(self.store.require(PROJECTS, project_id))

    def _budget(self, project: Project) -> Budget:
        if not project.budget_id:
            raise InvalidStateError(
                f"Project {project.id} has no budget",
                recovery_hint="Set a budget on the project before invoicing",
                context={"project_id": project.id},
            )
        return Budget.from_record(self.store.require(BUDGETS, project.budget_id))

    def _services(self, project: Project) -> List[Service]:
        if not project.budget_id:
            return []
        return [
            Service.from_record(record)
            for record in self.store.list_by(SERVICES, budget_id=project.budget_id)
        ]

    def _pending_source_ids(self, project_id: str) -> Tuple[Set[str], Set[str]]:
        """Sources already on another draft of the same project."""
        time_ids: Set[str] = set()
        expense_ids: Set[str] = set()
        for record in self.store.list_by(
            INVOICES, project_id=project_id, status=InvoiceStatus.DRAFT
        ):
            for item in self.get_line_items(record["id"]):
                time_ids.update(item.time_entry_ids)
                expense_ids.update(item.expense_ids)
        return time_ids, expense_ids

    # ----------------------------------------------------------------- drafting

    def _insert_draft(
        self,
        project: Project,
        result: BillingResult,
        due_date: Optional[dt.date],
        **extra: Any,
    ) -> Invoice:
        now = self._clock()
        invoice = Invoice(
            organization_id=project.organization_id,
            project_id=project.id,
            company_id=project.company_id,
            method=result.method,
            status=InvoiceStatus.DRAFT,
            subtotal=result.subtotal,
            tax=result.tax,
            total=result.total,
            due_date=due_date
            or (now + dt.timedelta(days=self.config.payment_terms_days)).date(),
            created_at=now,
            **extra,
        )
        invoice.id = self.store.insert(INVOICES, invoice.to_record())

        for position, line in enumerate(result.line_items):
            item = InvoiceLineItem(
                invoice_id=invoice.id,
                description=line.description,
                quantity=line.quantity,
                rate=line.rate,
                amount=line.amount,
                sort_order=position,
                time_entry_ids=line.time_entry_ids,
                expense_ids=line.expense_ids,
                milestone_id=line.milestone_id,
            )
            self.store.insert(INVOICE_LINE_ITEMS, item.to_record())

        if result.is_empty:
            logger.warning(
                f"Draft invoice {invoice.id} has no line items",
                extra={"invoice_id": invoice.id},
            )
        logger.info(
            f"Created {result.method.value} draft {invoice.id} for project "
            f"{project.id}: {invoice.total} cents in {len(result.line_items)} line(s)",
            extra={"invoice_id": invoice.id, "project_id": project.id},
        )
        return invoice

    @log_function_call
    def create_time_and_materials_invoice(
        self,
        project_id: str,
        *,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        group_by: str = GROUP_BY_SERVICE,
        include_expenses: bool = True,
        default_rate: int = 0,
        tax: int = 0,
        due_date: Optional[dt.date] = None,
    ) -> Invoice:
        """Draft a time-and-materials invoice for approved, uninvoiced work.

        Records already on another draft of the project are left out.
        """
        with LogContext(project_id=project_id), self.store.transaction():
            project = self._project(project_id)
            pending_time, pending_expenses = self._pending_source_ids(project_id)

            entries = [
                TimeEntry.from_record(record)
                for record in self.store.list_by(
                    TIME_ENTRIES, project_id=project_id, status=ApprovalStatus.APPROVED
                )
                if record["id"] not in pending_time
            ]
            expenses = [
                Expense.from_record(record)
                for record in self.store.list_by(
                    EXPENSES, project_id=project_id, status=ApprovalStatus.APPROVED
                )
                if record["id"] not in pending_expenses
            ]

            result = calculate_time_and_materials(
                entries,
                expenses,
                self._services(project),
                start=start,
                end=end,
                default_rate=default_rate,
                group_by=group_by,
                include_expenses=include_expenses,
                tax=tax,
            )
            return self._insert_draft(
                project, result, due_date, period_start=start, period_end=end
            )

    def fixed_fee_invoiced(self, project_id: str) -> int:
        """Subtotal of the project's fixed-fee invoices that are not Void."""
        return sum(
            record["subtotal"]
            for record in self.store.list_by(
                INVOICES, project_id=project_id, method=InvoiceMethod.FIXED_FEE
            )
            if record["status"] != InvoiceStatus.VOID
        )

    @log_function_call
    def create_fixed_fee_invoice(
        self,
        project_id: str,
        *,
        percentage: Optional[float] = None,
        amount: Optional[int] = None,
        description: Optional[str] = None,
        tax: int = 0,
        due_date: Optional[dt.date] = None,
    ) -> Invoice:
        """Draft a one-line fixed-fee invoice.

        Without a percentage or amount the line bills whatever remains of
        the budget after earlier fixed-fee invoices.
        """
        with LogContext(project_id=project_id), self.store.transaction():
            project = self._project(project_id)
            budget = self._budget(project)
            kwargs: Dict[str, Any] = {}
            if description:
                kwargs["description"] = description
            result = calculate_fixed_fee(
                budget,
                percentage=percentage,
                amount=amount,
                already_invoiced=self.fixed_fee_invoiced(project_id),
                tax=tax,
                **kwargs,
            )
            return self._insert_draft(project, result, due_date)

    @log_function_call
    def create_milestone_invoice(
        self,
        project_id: str,
        milestone_id: str,
        *,
        tax: int = 0,
        due_date: Optional[dt.date] = None,
    ) -> Invoice:
        """Draft an invoice for one completed milestone.

        The milestone is linked to the draft at once, so a second attempt
        fails even before the first invoice is finalized.

        Raises:
            AlreadyInvoicedError: If the milestone is already linked
            InvalidStateError: If it is not completed or not in the project
        """
        with LogContext(project_id=project_id, milestone_id=milestone_id), \
                self.store.transaction():
            project = self._project(project_id)
            milestone = Milestone.from_record(self.store.require(MILESTONES, milestone_id))
            result = calculate_milestone(milestone, project_id=project_id, tax=tax)
            invoice = self._insert_draft(project, result, due_date)
            self.store.patch(MILESTONES, milestone_id, {"invoice_id": invoice.id})
            return invoice

    def used_hours(
        self, project_id: str, period_start: dt.date, period_end: dt.date
    ) -> float:
        """Approved or locked hours logged in the period."""
        hours = []
        for status in (ApprovalStatus.APPROVED, ApprovalStatus.LOCKED):
            hours.extend(
                record["hours"]
                for record in self.store.list_in_range(
                    TIME_ENTRIES,
                    "date",
                    period_start,
                    period_end,
                    project_id=project_id,
                    status=status,
                )
            )
        return sum_hours(hours)

    @log_function_call
    def create_recurring_invoice(
        self,
        project_id: str,
        *,
        period_start: dt.date,
        period_end: dt.date,
        base_amount: Optional[int] = None,
        included_hours: Optional[float] = None,
        overage_rate: Optional[int] = None,
        tax: int = 0,
        due_date: Optional[dt.date] = None,
    ) -> Invoice:
        """Draft a retainer invoice for one period.

        Terms not given explicitly come from the project's retainer budget:
        ``total_amount`` as the base, ``included_hours`` and ``overage_rate``.
        """
        if period_end < period_start:
            raise InvalidStateError(
                "Billing period ends before it starts",
                context={"period_start": period_start, "period_end": period_end},
            )

        with LogContext(project_id=project_id), self.store.transaction():
            project = self._project(project_id)
            budget: Optional[Budget] = None
            if base_amount is None or included_hours is None or overage_rate is None:
                budget = self._budget(project)
                if budget.type != BudgetType.RETAINER:
                    logger.warning(
                        f"Recurring invoice on a {budget.type.value} budget "
                        f"for project {project_id}"
                    )

            if base_amount is None:
                base_amount = budget.total_amount
            if included_hours is None:
                included_hours = budget.included_hours or 0
            if overage_rate is None:
                overage_rate = budget.overage_rate or 0

            result = calculate_recurring(
                base_amount,
                included_hours=included_hours,
                used_hours=self.used_hours(project_id, period_start, period_end),
                overage_rate=overage_rate,
                description=(
                    f"Retainer {period_start.isoformat()} to {period_end.isoformat()}"
                ),
                tax=tax,
            )
            return self._insert_draft(
                project,
                result,
                due_date,
                period_start=period_start,
                period_end=period_end,
            )

    # ------------------------------------------------------------ draft editing

    def _require_draft(self, invoice: Invoice) -> None:
        if invoice.status != InvoiceStatus.DRAFT:
            raise NotEditableError(
                "Invoice",
                invoice.id,
                invoice.status,
                recovery_hint="Only Draft invoices can be edited",
            )

    def _recalculate(self, invoice_id: str) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        totals = calculate_totals(
            [item for item in self.get_line_items(invoice_id)], invoice.tax
        )
        self.store.patch(
            INVOICES, invoice_id, {"subtotal": totals.subtotal, "total": totals.total}
        )
        return self.get_invoice(invoice_id)

    def add_line_item(
        self,
        invoice_id: str,
        *,
        description: str,
        rate: int,
        quantity: float = 1,
        amount: Optional[int] = None,
    ) -> InvoiceLineItem:
        """Append a manual line to a draft; ``amount`` defaults to quantity x rate."""
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            self._require_draft(self.get_invoice(invoice_id))
            existing = self.get_line_items(invoice_id)
            item = InvoiceLineItem(
                invoice_id=invoice_id,
                description=description,
                quantity=quantity,
                rate=rate,
                amount=multiply_cents(quantity, rate) if amount is None else amount,
                sort_order=(existing[-1].sort_order + 1) if existing else 0,
            )
            item.id = self.store.insert(INVOICE_LINE_ITEMS, item.to_record())
            self._recalculate(invoice_id)
            return item

    def update_line_item(self, line_item_id: str, **changes: Any) -> InvoiceLineItem:
        """Edit a draft line.

        Changing quantity or rate recomputes the amount unless ``amount``
        is given too, which overrides it.
        """
        unknown = sorted(set(changes) - EDITABLE_LINE_FIELDS)
        if unknown:
            raise InvalidStateError(
                f"Line item fields cannot be edited: {', '.join(unknown)}",
                context={"fields": unknown, "editable": sorted(EDITABLE_LINE_FIELDS)},
            )

        with self.store.transaction():
            item = InvoiceLineItem.from_record(
                self.store.require(INVOICE_LINE_ITEMS, line_item_id)
            )
            self._require_draft(self.get_invoice(item.invoice_id))

            data = item.model_dump()
            data.update(changes)
            if "amount" not in changes and ({"quantity", "rate"} & set(changes)):
                data["amount"] = multiply_cents(data["quantity"], data["rate"])
            updated = InvoiceLineItem.model_validate(data)

            self.store.patch(INVOICE_LINE_ITEMS, line_item_id, updated.to_record())
            self._recalculate(item.invoice_id)
            return updated

    def delete_line_item(self, line_item_id: str) -> None:
        """Remove a draft line, releasing a milestone it billed."""
        with self.store.transaction():
            item = InvoiceLineItem.from_record(
                self.store.require(INVOICE_LINE_ITEMS, line_item_id)
            )
            self._require_draft(self.get_invoice(item.invoice_id))
            self._release_milestone(item)
            self.store.delete(INVOICE_LINE_ITEMS, line_item_id)
            self._recalculate(item.invoice_id)

    def set_tax(self, invoice_id: str, tax: int) -> Invoice:
        if tax < 0:
            raise InvalidStateError("Tax cannot be negative", context={"tax": tax})
        with self.store.transaction():
            self._require_draft(self.get_invoice(invoice_id))
            self.store.patch(INVOICES, invoice_id, {"tax": tax})
            return self._recalculate(invoice_id)

    def _release_milestone(self, item: InvoiceLineItem) -> None:
        if not item.milestone_id:
            return
        milestone = self.store.get(MILESTONES, item.milestone_id)
        if milestone and milestone.get("invoice_id") == item.invoice_id:
            self.store.patch(MILESTONES, item.milestone_id, {"invoice_id": None})

    def delete_draft(self, invoice_id: str) -> None:
        """Delete a draft and its lines. Finalized invoices must be voided."""
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            self._require_draft(self.get_invoice(invoice_id))
            for item in self.get_line_items(invoice_id):
                self._release_milestone(item)
                self.store.delete(INVOICE_LINE_ITEMS, item.id)
            self.store.delete(INVOICES, invoice_id)
        logger.info(f"Deleted draft invoice {invoice_id}")

    # ---------------------------------------------------------------- lifecycle

    def _assert_transition(self, invoice: Invoice, to_status: InvoiceStatus) -> None:
        allowed = INVOICE_TRANSITIONS[invoice.status]
        if to_status not in allowed:
            raise InvalidTransitionError(
                current=invoice.status,
                requested=to_status,
                valid_next=list(allowed),
                terminal=not allowed,
            )

    def next_invoice_number(self, organization_id: str, year: int) -> str:
        """Take the next number from the organization's counter for ``year``."""
        sequence = self.store.next_sequence(f"invoice:{organization_id}:{year}")
        return self.config.format_invoice_number(year, sequence)

    @log_function_call(level="INFO")
    def finalize(
        self,
        invoice_id: str,
        finalized_by: str,
        *,
        due_date: Optional[dt.date] = None,
    ) -> FinalizeResult:
        """Finalize a draft invoice.

        In one transaction: assigns the next invoice number for the
        organization and year, stamps ``finalized_at``/``finalized_by``,
        locks every billed time entry and expense, and links billed
        milestones. An invoice without lines is finalized but flagged
        ``needs_review``.

        Raises:
            AlreadyFinalizedError: If the invoice already left Draft
            InvalidStateError: If the invoice is Void, or a billed record
                is no longer Approved
            AlreadyInvoicedError: If a billed record belongs to another
                invoice
        """
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            if invoice.status in FINALIZED_STATUSES:
                raise AlreadyFinalizedError(invoice_id, invoice.status, invoice.number)
            if invoice.status == InvoiceStatus.VOID:
                raise InvalidStateError(
                    f"Invoice {invoice_id} is void and cannot be finalized",
                    context={"invoice_id": invoice_id, "status": invoice.status.value},
                )

            now = self._clock()
            items = self.get_line_items(invoice_id)
            number = self.next_invoice_number(invoice.organization_id, now.year)
            result = FinalizeResult(invoice=invoice, number=number)

            for item in items:
                for entry_id in item.time_entry_ids:
                    self.time_entries.lock(entry_id, invoice_id)
                    result.locked_time_entry_ids.append(entry_id)
                for expense_id in item.expense_ids:
                    self.expenses.lock(expense_id, invoice_id)
                    result.locked_expense_ids.append(expense_id)
                if item.milestone_id:
                    self._link_milestone(item.milestone_id, invoice_id)
                    result.milestone_ids.append(item.milestone_id)

            result.needs_review = not items
            if result.needs_review:
                logger.warning(
                    f"Invoice {invoice_id} finalized without line items; flagged for review"
                )

            updates: Dict[str, Any] = {
                "status": InvoiceStatus.FINALIZED,
                "number": number,
                "finalized_at": now,
                "finalized_by": finalized_by,
                "needs_review": result.needs_review,
            }
            if due_date is not None:
                updates["due_date"] = due_date
            self.store.patch(INVOICES, invoice_id, updates)

            result.invoice = self.get_invoice(invoice_id)
            logger.info(
                f"Invoice {invoice_id} finalized as {number}: locked "
                f"{len(result.locked_time_entry_ids)} time entries and "
                f"{len(result.locked_expense_ids)} expenses"
            )
            return result

    def _link_milestone(self, milestone_id: str, invoice_id: str) -> None:
        milestone = Milestone.from_record(self.store.require(MILESTONES, milestone_id))
        if milestone.invoice_id and milestone.invoice_id != invoice_id:
            raise AlreadyInvoicedError("Milestone", milestone_id, milestone.invoice_id)
        self.store.patch(MILESTONES, milestone_id, {"invoice_id": invoice_id})

    def mark_sent(self, invoice_id: str) -> Invoice:
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            self._assert_transition(invoice, InvoiceStatus.SENT)
            self.store.patch(
                INVOICES,
                invoice_id,
                {"status": InvoiceStatus.SENT, "sent_at": self._clock()},
            )
            logger.info(f"Invoice {invoice.number} sent")
            return self.get_invoice(invoice_id)

    def mark_viewed(self, invoice_id: str) -> Invoice:
        """Record the client's first view; later views change nothing."""
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            if invoice.viewed_at is not None or invoice.status in (
                InvoiceStatus.VIEWED,
                InvoiceStatus.PAID,
            ):
                return invoice
            self._assert_transition(invoice, InvoiceStatus.VIEWED)
            self.store.patch(
                INVOICES,
                invoice_id,
                {"status": InvoiceStatus.VIEWED, "viewed_at": self._clock()},
            )
            return self.get_invoice(invoice_id)

    def amount_paid(self, invoice_id: str) -> int:
        return sum(
            record["amount"] for record in self.store.list_by(PAYMENTS, invoice_id=invoice_id)
        )

    def outstanding_amount(self, invoice_id: str) -> int:
        invoice = self.get_invoice(invoice_id)
        return max(invoice.total - self.amount_paid(invoice_id), 0)

    @log_function_call(level="INFO")
    def record_payment(
        self,
        invoice_id: str,
        amount: int,
        *,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        reference: Optional[str] = None,
        received_at: Optional[dt.datetime] = None,
    ) -> Payment:
        """Record a payment; the invoice becomes Paid once fully covered.

        Raises:
            InvalidStateError: If the invoice is not awaiting payment
        """
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            if invoice.status not in PAYABLE_STATUSES:
                raise InvalidStateError(
                    f"Cannot record a payment on a {invoice.status.value} invoice",
                    recovery_hint="Payments apply to finalized, unpaid invoices",
                    context={"invoice_id": invoice_id, "status": invoice.status.value},
                )

            now = self._clock()
            payment = Payment(
                invoice_id=invoice_id,
                organization_id=invoice.organization_id,
                amount=amount,
                received_at=received_at or now,
                method=method,
                reference=reference,
            )
            payment.id = self.store.insert(PAYMENTS, payment.to_record())

            paid = self.amount_paid(invoice_id)
            if paid >= invoice.total:
                self.store.patch(
                    INVOICES, invoice_id, {"status": InvoiceStatus.PAID, "paid_at": now}
                )
                logger.info(f"Invoice {invoice.number} paid in full ({paid} cents)")
            return payment

    def mark_paid(self, invoice_id: str) -> Invoice:
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            self._assert_transition(invoice, InvoiceStatus.PAID)
            self.store.patch(
                INVOICES,
                invoice_id,
                {"status": InvoiceStatus.PAID, "paid_at": self._clock()},
            )
            return self.get_invoice(invoice_id)

    @log_function_call(level="INFO")
    def void(
        self, invoice_id: str, voided_by: str, reason: Optional[str] = None
    ) -> Invoice:
        """Void an invoice so it never counts as revenue.

        Voiding an already void invoice is a no-op. A voided draft releases
        its milestone link; records locked by a finalized invoice stay
        locked.

        Raises:
            InvalidTransitionError: If the invoice is Paid
        """
        with LogContext(invoice_id=invoice_id), self.store.transaction():
            invoice = self.get_invoice(invoice_id)
            if invoice.status == InvoiceStatus.VOID:
                return invoice
            self._assert_transition(invoice, InvoiceStatus.VOID)

            if invoice.status == InvoiceStatus.DRAFT:
                for item in self.get_line_items(invoice_id):
                    self._release_milestone(item)

            self.store.patch(
                INVOICES,
                invoice_id,
                {
                    "status": InvoiceStatus.VOID,
                    "voided_at": self._clock(),
                    "voided_by": voided_by,
                    "void_reason": reason,
                },
            )
            logger.warning(
                f"Invoice {invoice.number or invoice_id} voided by {voided_by}"
                f" from {invoice.status.value}",
                extra={"audit": "invoice_void", "reason": reason},
            )
            return self.get_invoice(invoice_id)
