"""Typed exception hierarchy for the PSA workflow engine.

Every error carries a machine-readable ``code`` class attribute, a human
message, an optional recovery hint, and a ``context`` dict with the data a
caller needs to render an actionable message (current status, valid next
states, the violated rule).

    PsaEngineError
    +-- InvalidTransitionError      INVALID_TRANSITION
    +-- NotSubmittedError           NOT_SUBMITTED
    +-- NotEditableError            NOT_EDITABLE
    +-- SelfApprovalForbiddenError  SELF_APPROVAL_FORBIDDEN
    +-- MissingReasonError          MISSING_REASON
    +-- AlreadyInvoicedError        ALREADY_INVOICED
    +-- AlreadyFinalizedError       ALREADY_FINALIZED
    +-- InvalidStateError           INVALID_STATE
    +-- NotFoundError               NOT_FOUND

Errors are terminal for the operation that raised them. Nothing in the
engine retries.
"""

from typing import Any, Dict, List, Optional


class PsaEngineError(Exception):
    """Base exception for all engine errors."""

    code: str = "PSA_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        recovery_hint: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.recovery_hint = recovery_hint
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for logs and API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "recovery_hint": self.recovery_hint,
            "context": self.context,
        }


class InvalidTransitionError(PsaEngineError):
    """A status change is not an edge of the governing transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        current: Any,
        requested: Any,
        valid_next: Optional[List[Any]] = None,
        terminal: bool = False,
        reason: Optional[str] = None,
    ):
        self.current = current
        self.requested = requested
        self.valid_next = list(valid_next or [])
        self.terminal = terminal

        current_label = getattr(current, "value", current)
        requested_label = getattr(requested, "value", requested)
        if reason is None:
            if terminal:
                reason = (
                    f"Cannot transition from terminal stage '{current_label}'"
                )
            else:
                allowed = ", ".join(
                    str(getattr(s, "value", s)) for s in self.valid_next
                ) or "none"
                reason = (
                    f"Invalid transition from '{current_label}' to "
                    f"'{requested_label}'. Valid next: {allowed}"
                )
        self.reason = reason

        hint = None
        if not terminal and self.valid_next:
            hint = "Move to one of the valid next states first"

        super().__init__(
            reason,
            recovery_hint=hint,
            context={
                "current": current_label,
                "requested": requested_label,
                "valid_next": [getattr(s, "value", s) for s in self.valid_next],
                "terminal": terminal,
            },
        )


class _StatusGuardError(PsaEngineError):
    """Shared shape for errors raised by a status precondition."""

    default_hint: Optional[str] = None

    def __init__(
        self,
        kind: str,
        record_id: str,
        status: Any,
        message: Optional[str] = None,
        recovery_hint: Optional[str] = None,
    ):
        self.kind = kind
        self.record_id = record_id
        self.status = status
        status_label = getattr(status, "value", status)
        super().__init__(
            message or self._default_message(kind, record_id, status_label),
            recovery_hint=recovery_hint or self.default_hint,
            context={"kind": kind, "record_id": record_id, "status": status_label},
        )

    def _default_message(self, kind: str, record_id: str, status: Any) -> str:
        return f"{kind} {record_id} is {status}"


class NotSubmittedError(_StatusGuardError):
    """Approve or reject attempted on a record that is not Submitted."""

    code: str = "NOT_SUBMITTED"
    default_hint = "Only submitted records can be approved or rejected"

    def _default_message(self, kind: str, record_id: str, status: Any) -> str:
        return f"{kind} {record_id} is not submitted (status: {status})"


class NotEditableError(_StatusGuardError):
    """Mutation attempted outside the editable statuses."""

    code: str = "NOT_EDITABLE"
    default_hint = "Only Draft or Rejected records can be changed"

    def _default_message(self, kind: str, record_id: str, status: Any) -> str:
        return f"{kind} {record_id} cannot be modified in status {status}"


class SelfApprovalForbiddenError(PsaEngineError):
    """A reviewer tried to approve their own record."""

    code: str = "SELF_APPROVAL_FORBIDDEN"

    def __init__(self, kind: str, record_id: str, user_id: str):
        self.kind = kind
        self.record_id = record_id
        self.user_id = user_id
        super().__init__(
            f"Cannot approve your own {kind.lower()}",
            recovery_hint="Ask another reviewer to approve this record",
            context={"kind": kind, "record_id": record_id, "user_id": user_id},
        )


class MissingReasonError(PsaEngineError):
    """A rejection or override was attempted without an explanation."""

    code: str = "MISSING_REASON"

    def __init__(self, action: str, record_id: Optional[str] = None):
        self.action = action
        self.record_id = record_id
        super().__init__(
            f"A non-empty reason is required to {action}",
            recovery_hint="Provide comments describing what must change",
            context={"action": action, "record_id": record_id},
        )


class AlreadyInvoicedError(PsaEngineError):
    """A billable source is already linked to an invoice."""

    code: str = "ALREADY_INVOICED"

    def __init__(self, kind: str, record_id: str, invoice_id: str):
        self.kind = kind
        self.record_id = record_id
        self.invoice_id = invoice_id
        super().__init__(
            f"{kind} {record_id} has already been invoiced ({invoice_id})",
            recovery_hint="Void or delete the existing invoice first",
            context={"kind": kind, "record_id": record_id, "invoice_id": invoice_id},
        )


class AlreadyFinalizedError(PsaEngineError):
    """Finalize attempted on an invoice that already left Draft."""

    code: str = "ALREADY_FINALIZED"

    def __init__(self, invoice_id: str, status: Any, number: Optional[str] = None):
        self.invoice_id = invoice_id
        self.status = status
        self.number = number
        status_label = getattr(status, "value", status)
        super().__init__(
            f"Invoice {invoice_id} is already finalized (status: {status_label})",
            context={
                "invoice_id": invoice_id,
                "status": status_label,
                "number": number,
            },
        )


class InvalidStateError(PsaEngineError):
    """A domain rule rejected the operation for the record's current data."""

    code: str = "INVALID_STATE"


class NotFoundError(PsaEngineError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(
            f"{table} record not found: {record_id}",
            context={"table": table, "record_id": record_id},
        )
