"""Submit / approve / reject / revise state machine for activity records.

One implementation drives both time entries and expenses. The kind-specific
parts (table, model, quantity field, extra submit and revision rules) come
from an ``ApprovalSubject`` descriptor.

Statuses:

    Draft -> Submitted                 submit (quantity must be positive)
    Submitted -> Approved | Rejected   approve / reject (reviewer != owner)
    Rejected -> Draft | Submitted      revise
    Approved -> Locked                 lock (invoice finalization only)

Only Draft and Rejected records may be edited or deleted.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from pydantic import ValidationError

from psa_engine.config.settings import PsaEngineConfig, get_config
from psa_engine.exceptions import (
    AlreadyInvoicedError,
    InvalidStateError,
    MissingReasonError,
    NotEditableError,
    NotSubmittedError,
    PsaEngineError,
    SelfApprovalForbiddenError,
)
from psa_engine.models.activity import ApprovableRecord, Expense, TimeEntry
from psa_engine.models.enums import ApprovalStatus
from psa_engine.store.record_store import EXPENSES, TIME_ENTRIES, RecordStore
from psa_engine.utils.logging_utils import LogContext, log_function_call
from psa_engine.validators.business_validators import BusinessRuleValidators
from psa_engine.validators.validation_report import ValidationReport
from psa_engine.workflow.revision_cycle import (
    check_revision_on_rejection,
    requires_admin_intervention,
)

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = frozenset({ApprovalStatus.DRAFT, ApprovalStatus.REJECTED})

# Fields only the approval workflow itself may write
WORKFLOW_FIELDS = frozenset(
    {
        "id",
        "status",
        "submitted_at",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejected_at",
        "rejection_comments",
        "revision_count",
        "escalated_to_admin",
        "invoice_id",
    }
)


@dataclass(frozen=True)
class RuleContext:
    """What a rule hook may consult besides the record under check.

    Attributes:
        config: Engine configuration
        store: Record store, for checks against other records
        today: Current day by the loop's clock
        admin_override: Whether an administrator is acting
    """

    config: PsaEngineConfig
    store: RecordStore
    today: dt.date
    admin_override: bool = False


RuleHook = Callable[[Any, RuleContext, ValidationReport], None]


def _no_rules(target: Any, context: RuleContext, report: ValidationReport) -> None:
    return None


@dataclass(frozen=True)
class ApprovalSubject:
    """Describes one kind of approvable record.

    Attributes:
        kind: Display name used in messages ("Time entry")
        table: Record store table
        model: Pydantic model for the records
        quantity_field: Field that must be positive to submit
        owner_field: Field holding the submitter's user id
        submit_rules: Extra checks run on the record before submission
        revision_rules: Extra checks run on the corrected record during revise
    """

    kind: str
    table: str
    model: Type[ApprovableRecord]
    quantity_field: str
    owner_field: str = "user_id"
    submit_rules: RuleHook = _no_rules
    revision_rules: RuleHook = _no_rules


def _check_entry_date(
    record: ApprovableRecord, context: RuleContext, report: ValidationReport
) -> None:
    BusinessRuleValidators.validate_entry_date(
        record.date,
        context.today,
        report,
        warning_days=context.config.entry_age_warning_days,
        max_age_days=context.config.max_entry_age_days,
        admin_override=context.admin_override,
    )


def _same_day(
    record: ApprovableRecord,
    context: RuleContext,
    table: str,
    model: Type[ApprovableRecord],
) -> List[ApprovableRecord]:
    return [
        model.from_record(row)
        for row in context.store.list_by(
            table,
            user_id=record.user_id,
            project_id=record.project_id,
            date=record.date,
        )
    ]


def _time_entry_submit_rules(
    entry: TimeEntry, context: RuleContext, report: ValidationReport
) -> None:
    BusinessRuleValidators.validate_hours(entry.hours, report)
    _check_entry_date(entry, context, report)
    BusinessRuleValidators.flag_duplicate_time_entries(
        entry, _same_day(entry, context, TIME_ENTRIES, TimeEntry), report
    )


def _time_entry_revision_rules(
    entry: TimeEntry, context: RuleContext, report: ValidationReport
) -> None:
    BusinessRuleValidators.validate_revised_hours(entry.hours, report)


def _expense_submit_rules(
    expense: Expense, context: RuleContext, report: ValidationReport
) -> None:
    config = context.config
    BusinessRuleValidators.validate_markup_rate(
        expense.markup_rate, config.max_markup_rate, report
    )
    BusinessRuleValidators.validate_receipt(
        expense, config.receipt_required_threshold, report
    )
    _check_entry_date(expense, context, report)
    BusinessRuleValidators.validate_expense_policy(
        expense, config.expense_type_limits, report
    )
    BusinessRuleValidators.flag_duplicate_expenses(
        expense, _same_day(expense, context, EXPENSES, Expense), report
    )


def _expense_revision_rules(
    expense: Expense, context: RuleContext, report: ValidationReport
) -> None:
    BusinessRuleValidators.validate_markup_rate(
        expense.markup_rate, context.config.max_markup_rate, report
    )


TIME_ENTRY_SUBJECT = ApprovalSubject(
    kind="Time entry",
    table=TIME_ENTRIES,
    model=TimeEntry,
    quantity_field="hours",
    submit_rules=_time_entry_submit_rules,
    revision_rules=_time_entry_revision_rules,
)

EXPENSE_SUBJECT = ApprovalSubject(
    kind="Expense",
    table=EXPENSES,
    model=Expense,
    quantity_field="amount",
    submit_rules=_expense_submit_rules,
    revision_rules=_expense_revision_rules,
)


@dataclass
class BatchItemResult:
    """Outcome for one id of a batch operation."""

    record_id: str
    record: Optional[ApprovableRecord] = None
    error: Optional[PsaEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Per-id outcomes of a batch approve or reject.

    Example:
        >>> result = loop.approve_many(["te_1", "te_2"], reviewer_id="mgr")
        >>> result.succeeded
        ['te_1']
        >>> result.failed[0].error.code
        'NOT_SUBMITTED'
    """

    items: List[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [item.record_id for item in self.items if item.ok]

    @property
    def failed(self) -> List[BatchItemResult]:
        return [item for item in self.items if not item.ok]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class ApprovalLoop:
    """Approval state machine bound to one record kind and one store.

    Every public operation runs inside a single store transaction, so a
    failed check leaves the record untouched.

    Args:
        store: Record store holding the records
        subject: Descriptor of the record kind
        config: Engine configuration (defaults to the global config)
        clock: Callable returning the current time
    """

    def __init__(
        self,
        store: RecordStore,
        subject: ApprovalSubject,
        config: Optional[PsaEngineConfig] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.store = store
        self.subject = subject
        self.config = config or get_config()
        self._clock = clock or dt.datetime.now

    # ------------------------------------------------------------------ helpers

    def get(self, record_id: str) -> ApprovableRecord:
        return self.subject.model.from_record(
            self.store.require(self.subject.table, record_id)
        )

    def _context(self, record_id: str) -> LogContext:
        return LogContext(record_kind=self.subject.kind, record_id=record_id)

    def _owner(self, record: ApprovableRecord) -> str:
        return getattr(record, self.subject.owner_field)

    def _quantity(self, record: ApprovableRecord) -> float:
        return getattr(record, self.subject.quantity_field)

    def _build(self, record_id: Optional[str], data: Dict[str, Any]) -> ApprovableRecord:
        try:
            return self.subject.model.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidStateError(
                f"Invalid {self.subject.kind.lower()}: {problems}",
                recovery_hint="Correct the listed fields and try again",
                context={"record_id": record_id, "errors": e.errors(include_url=False)},
            ) from e

    def _reject_workflow_fields(self, changes: Dict[str, Any]) -> None:
        managed = sorted(WORKFLOW_FIELDS.intersection(changes))
        if managed:
            raise InvalidStateError(
                f"Fields managed by the approval workflow cannot be set directly: "
                f"{', '.join(managed)}",
                context={"fields": managed},
            )

    def _apply_changes(
        self, record: ApprovableRecord, changes: Dict[str, Any]
    ) -> ApprovableRecord:
        self._reject_workflow_fields(changes)
        data = record.model_dump()
        data.update(changes)
        return self._build(record.id, data)

    def _require_editable(self, record: ApprovableRecord) -> None:
        if record.status not in EDITABLE_STATUSES:
            raise NotEditableError(self.subject.kind, record.id, record.status)

    def _rule_context(self, admin_override: bool = False) -> RuleContext:
        return RuleContext(
            config=self.config,
            store=self.store,
            today=self._clock().date(),
            admin_override=admin_override,
        )

    def _submission_report(
        self, record: ApprovableRecord, admin_override: bool = False
    ) -> ValidationReport:
        report = ValidationReport()
        self.subject.submit_rules(record, self._rule_context(admin_override), report)
        return report

    def _check_submittable(
        self,
        record: ApprovableRecord,
        admin_override: bool = False,
        actor_id: Optional[str] = None,
    ) -> ValidationReport:
        quantity = self._quantity(record)
        if quantity is None or quantity <= 0:
            raise InvalidStateError(
                f"{self.subject.kind} must have {self.subject.quantity_field} "
                f"greater than 0 to be submitted",
                context={
                    "record_id": record.id,
                    self.subject.quantity_field: quantity,
                },
            )
        report = self._submission_report(record, admin_override)
        report.raise_if_invalid(f"Cannot submit {self.subject.kind.lower()}")

        for issue in report.get_warnings():
            if issue.context and issue.context.get("admin_override"):
                logger.warning(
                    f"Admin date exception for {self.subject.kind.lower()} "
                    f"{record.id} by {actor_id}: {issue.message}",
                    extra={"audit": "admin_override", "actor_id": actor_id},
                )
            else:
                logger.warning(
                    f"{self.subject.kind} {record.id}: {issue.message}",
                    extra={"audit": "submission_warning", "rule": issue.field},
                )
        return report

    def _require_submitted(self, record: ApprovableRecord) -> None:
        if record.status != ApprovalStatus.SUBMITTED:
            raise NotSubmittedError(self.subject.kind, record.id, record.status)

    # --------------------------------------------------------------- operations

    def create_draft(self, **fields: Any) -> ApprovableRecord:
        """Create a new record in Draft.

        Raises:
            InvalidStateError: If a field is invalid or workflow-managed
        """
        self._reject_workflow_fields(fields)
        record = self._build(None, fields)
        with self.store.transaction():
            record.id = self.store.insert(self.subject.table, record.to_record())
        logger.info(
            f"Created {self.subject.kind.lower()} {record.id}",
            extra={"record_kind": self.subject.kind, "record_id": record.id},
        )
        return record

    def update(self, record_id: str, **changes: Any) -> ApprovableRecord:
        """Edit a Draft or Rejected record. The status does not change.

        Raises:
            NotEditableError: If the record is Submitted, Approved or Locked
        """
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            self._require_editable(record)
            updated = self._apply_changes(record, changes)
            self.store.patch(
                self.subject.table,
                record_id,
                {key: getattr(updated, key) for key in changes},
            )
            return updated

    def delete(self, record_id: str) -> None:
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            self._require_editable(record)
            self.store.delete(self.subject.table, record_id)
        logger.info(f"Deleted {self.subject.kind.lower()} {record_id}")

    def check_submission(
        self, record_id: str, *, admin_override: bool = False
    ) -> ValidationReport:
        """Run the submit rules without changing the record.

        The report holds blocking errors as well as advisory warnings
        (old dates, policy limits, possible duplicates).
        """
        return self._submission_report(self.get(record_id), admin_override)

    @log_function_call
    def submit(
        self,
        record_id: str,
        *,
        admin_override: bool = False,
        actor_id: Optional[str] = None,
    ) -> ApprovableRecord:
        """Move a Draft record to Submitted.

        Advisory findings are logged at WARNING and do not block.

        Args:
            record_id: Record to submit
            admin_override: Administrator exception for entries dated past
                the maximum age
            actor_id: User submitting, for the audit log

        Raises:
            InvalidStateError: If the quantity is not positive, a submit rule
                fails, or the record is Rejected (use ``revise``)
            NotEditableError: If the record already left the editable states
        """
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            if record.status == ApprovalStatus.REJECTED:
                raise InvalidStateError(
                    f"{self.subject.kind} {record_id} was rejected; revise it "
                    f"instead of submitting",
                    recovery_hint="Call revise with resubmit=True",
                    context={"record_id": record_id, "status": record.status.value},
                )
            self._require_editable(record)
            self._check_submittable(record, admin_override, actor_id)

            now = self._clock()
            self.store.patch(
                self.subject.table,
                record_id,
                {"status": ApprovalStatus.SUBMITTED, "submitted_at": now},
            )
            logger.info(f"{self.subject.kind} {record_id} submitted")
            return self.get(record_id)

    @log_function_call
    def approve(self, record_id: str, reviewer_id: str) -> ApprovableRecord:
        """Approve a Submitted record.

        Self-approval is checked before status so an owner always gets the
        same answer for their own record.

        Raises:
            SelfApprovalForbiddenError: If ``reviewer_id`` owns the record
            NotSubmittedError: If the record is not Submitted
        """
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            if self._owner(record) == reviewer_id:
                raise SelfApprovalForbiddenError(
                    self.subject.kind, record_id, reviewer_id
                )
            self._require_submitted(record)

            self.store.patch(
                self.subject.table,
                record_id,
                {
                    "status": ApprovalStatus.APPROVED,
                    "approved_by": reviewer_id,
                    "approved_at": self._clock(),
                    "rejection_comments": None,
                },
            )
            logger.info(
                f"{self.subject.kind} {record_id} approved by {reviewer_id}"
            )
            return self.get(record_id)

    @log_function_call
    def reject(
        self, record_id: str, reviewer_id: str, comments: Optional[str]
    ) -> ApprovableRecord:
        """Reject a Submitted record with feedback.

        Each rejection counts toward the revision limit; reaching it
        escalates the record to an administrator.

        Raises:
            MissingReasonError: If ``comments`` is empty after trimming
            NotSubmittedError: If the record is not Submitted
        """
        trimmed = (comments or "").strip()
        if not trimmed:
            raise MissingReasonError(f"reject a {self.subject.kind.lower()}", record_id)

        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            self._require_submitted(record)

            check = check_revision_on_rejection(
                record.revision_count, self.config.max_revision_cycles
            )
            updates: Dict[str, Any] = {
                "status": ApprovalStatus.REJECTED,
                "rejection_comments": trimmed,
                "rejected_by": reviewer_id,
                "rejected_at": self._clock(),
                "revision_count": check.revision_count,
            }
            if check.should_escalate and not record.escalated_to_admin:
                updates["escalated_to_admin"] = True
                logger.warning(
                    f"{self.subject.kind} {record_id} escalated: {check.message}",
                    extra={"audit": "escalation", "revision_count": check.revision_count},
                )

            self.store.patch(self.subject.table, record_id, updates)
            logger.info(
                f"{self.subject.kind} {record_id} rejected by {reviewer_id} "
                f"(revision {check.revision_count})"
            )
            return self.get(record_id)

    @log_function_call
    def revise(
        self,
        record_id: str,
        changes: Optional[Dict[str, Any]] = None,
        *,
        resubmit: bool,
        admin_override: bool = False,
        actor_id: Optional[str] = None,
    ) -> ApprovableRecord:
        """Correct a Rejected record and return it to Draft or Submitted.

        Revision rules run on the corrected record as a whole, so values
        changed earlier through ``update`` are checked as well.

        Args:
            record_id: Record to revise
            changes: Field corrections to apply
            resubmit: Submit immediately instead of saving as Draft
            admin_override: Required once the record has been escalated; also
                grants the exception for entries past the maximum age
            actor_id: User performing the revision, for the audit log

        Raises:
            NotEditableError: If the record is Submitted, Approved or Locked
            InvalidStateError: If the record is a Draft, is escalated without
                an override, or the corrected values break a rule
        """
        changes = dict(changes or {})
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            self._require_editable(record)
            if record.status != ApprovalStatus.REJECTED:
                raise InvalidStateError(
                    f"{self.subject.kind} {record_id} is not rejected; only "
                    f"rejected records can be revised",
                    recovery_hint="Edit the draft with update and submit it",
                    context={"record_id": record_id, "status": record.status.value},
                )

            if requires_admin_intervention(
                record.revision_count,
                record.escalated_to_admin,
                self.config.max_revision_cycles,
            ):
                if not admin_override:
                    raise InvalidStateError(
                        f"{self.subject.kind} {record_id} has been escalated after "
                        f"{record.revision_count} rejections and requires admin review",
                        recovery_hint="An administrator must revise with admin_override",
                        context={
                            "record_id": record_id,
                            "revision_count": record.revision_count,
                        },
                    )
                logger.warning(
                    f"Admin override revision of escalated "
                    f"{self.subject.kind.lower()} {record_id} by {actor_id}",
                    extra={"audit": "admin_override", "actor_id": actor_id},
                )

            revised = self._apply_changes(record, changes)
            report = ValidationReport()
            self.subject.revision_rules(
                revised, self._rule_context(admin_override), report
            )
            report.raise_if_invalid(f"Cannot revise {self.subject.kind.lower()}")
            if resubmit:
                self._check_submittable(revised, admin_override, actor_id)

            updates = {key: getattr(revised, key) for key in changes}
            updates["rejection_comments"] = None
            if resubmit:
                updates["status"] = ApprovalStatus.SUBMITTED
                updates["submitted_at"] = self._clock()
            else:
                updates["status"] = ApprovalStatus.DRAFT

            self.store.patch(self.subject.table, record_id, updates)
            logger.info(
                f"{self.subject.kind} {record_id} revised to "
                f"{updates['status'].value}"
            )
            return self.get(record_id)

    def lock(self, record_id: str, invoice_id: str) -> ApprovableRecord:
        """Lock an Approved record against the invoice that bills it.

        Called by invoice finalization; there is no user-facing path.

        Raises:
            InvalidStateError: If the record is not Approved
            AlreadyInvoicedError: If it is linked to a different invoice
        """
        with self._context(record_id), self.store.transaction():
            record = self.get(record_id)
            if record.status != ApprovalStatus.APPROVED:
                raise InvalidStateError(
                    f"{self.subject.kind} {record_id} must be Approved to be "
                    f"locked (status: {record.status.value})",
                    context={
                        "record_id": record_id,
                        "status": record.status.value,
                        "invoice_id": invoice_id,
                    },
                )
            if record.invoice_id and record.invoice_id != invoice_id:
                raise AlreadyInvoicedError(
                    self.subject.kind, record_id, record.invoice_id
                )

            self.store.patch(
                self.subject.table,
                record_id,
                {"status": ApprovalStatus.LOCKED, "invoice_id": invoice_id},
            )
            logger.debug(f"{self.subject.kind} {record_id} locked by {invoice_id}")
            return self.get(record_id)

    # -------------------------------------------------------------------- batch

    def _run_batch(
        self,
        record_ids: Iterable[str],
        operation: Callable[[str], ApprovableRecord],
        atomic: bool,
    ) -> BatchResult:
        result = BatchResult()

        if atomic:
            with self.store.transaction():
                for record_id in record_ids:
                    result.items.append(
                        BatchItemResult(record_id=record_id, record=operation(record_id))
                    )
            return result

        for record_id in record_ids:
            try:
                record = operation(record_id)
            except PsaEngineError as e:
                result.items.append(BatchItemResult(record_id=record_id, error=e))
            else:
                result.items.append(BatchItemResult(record_id=record_id, record=record))

        if result.failed:
            logger.warning(
                f"Batch on {self.subject.kind.lower()}s: "
                f"{len(result.succeeded)} applied, {len(result.failed)} failed"
            )
        return result

    def approve_many(
        self, record_ids: Iterable[str], reviewer_id: str, *, atomic: bool = False
    ) -> BatchResult:
        """Approve several records.

        Each id is validated and applied on its own; failures are reported
        per id. With ``atomic=True`` the first failure rolls back the whole
        batch and is raised.
        """
        return self._run_batch(
            record_ids, lambda record_id: self.approve(record_id, reviewer_id), atomic
        )

    def reject_many(
        self,
        record_ids: Iterable[str],
        reviewer_id: str,
        comments: Optional[str],
        *,
        atomic: bool = False,
    ) -> BatchResult:
        """Reject several records with the same comment.

        Raises:
            MissingReasonError: If ``comments`` is empty, before any record
                is touched
        """
        if not (comments or "").strip():
            raise MissingReasonError(f"reject {self.subject.kind.lower()}s")
        return self._run_batch(
            record_ids,
            lambda record_id: self.reject(record_id, reviewer_id, comments),
            atomic,
        )


def time_entry_loop(
    store: RecordStore,
    config: Optional[PsaEngineConfig] = None,
    clock: Optional[Callable[[], dt.datetime]] = None,
) -> ApprovalLoop:
    return ApprovalLoop(store, TIME_ENTRY_SUBJECT, config=config, clock=clock)


def expense_loop(
    store: RecordStore,
    config: Optional[PsaEngineConfig] = None,
    clock: Optional[Callable[[], dt.datetime]] = None,
) -> ApprovalLoop:
    return ApprovalLoop(store, EXPENSE_SUBJECT, config=config, clock=clock)
