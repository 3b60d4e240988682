"""Workflow state machines: deal stages and activity approval."""

from psa_engine.workflow.approval_loop import (
    EXPENSE_SUBJECT,
    TIME_ENTRY_SUBJECT,
    ApprovalLoop,
    ApprovalSubject,
    BatchItemResult,
    BatchResult,
    expense_loop,
    time_entry_loop,
)
from psa_engine.workflow.deals import DealService
from psa_engine.workflow.stage_graph import (
    TERMINAL_STAGES,
    VALID_STAGE_TRANSITIONS,
    assert_valid_transition,
    is_terminal,
    is_valid_transition,
    transition_error_reason,
    valid_next_stages,
)

__all__ = [
    "ApprovalLoop",
    "ApprovalSubject",
    "BatchItemResult",
    "BatchResult",
    "DealService",
    "EXPENSE_SUBJECT",
    "TERMINAL_STAGES",
    "TIME_ENTRY_SUBJECT",
    "VALID_STAGE_TRANSITIONS",
    "assert_valid_transition",
    "expense_loop",
    "is_terminal",
    "is_valid_transition",
    "time_entry_loop",
    "transition_error_reason",
    "valid_next_stages",
]
