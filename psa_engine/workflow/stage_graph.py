"""Deal stage transition graph.

Deals progress through the pipeline one stage at a time:

    Lead -> Qualified -> Proposal -> Negotiation -> Won

with exits to Disqualified/Lost along the way and a single revision edge
from Negotiation back to Proposal. Won and Lost are terminal. Staying in
the same stage is always allowed and is a no-op.
"""

from typing import Dict, List, Optional, Tuple

from psa_engine.exceptions import InvalidTransitionError
from psa_engine.models.enums import DealStage

VALID_STAGE_TRANSITIONS: Dict[DealStage, Tuple[DealStage, ...]] = {
    DealStage.LEAD: (DealStage.QUALIFIED, DealStage.DISQUALIFIED),
    DealStage.QUALIFIED: (DealStage.PROPOSAL, DealStage.DISQUALIFIED),
    DealStage.DISQUALIFIED: (DealStage.LOST,),
    DealStage.PROPOSAL: (DealStage.NEGOTIATION, DealStage.LOST),
    DealStage.NEGOTIATION: (DealStage.WON, DealStage.LOST, DealStage.PROPOSAL),
    DealStage.WON: (),
    DealStage.LOST: (),
}

TERMINAL_STAGES = frozenset({DealStage.WON, DealStage.LOST})


def is_valid_transition(current: DealStage, requested: DealStage) -> bool:
    """Check whether ``current -> requested`` is an edge or a self-loop.

    Args:
        current: Stage the deal is in
        requested: Stage the caller wants to move to

    Returns:
        True if the transition is allowed

    Example:
        >>> is_valid_transition(DealStage.LEAD, DealStage.QUALIFIED)
        True
        >>> is_valid_transition(DealStage.LEAD, DealStage.WON)
        False
    """
    current = DealStage(current)
    requested = DealStage(requested)
    if current == requested:
        return True
    return requested in VALID_STAGE_TRANSITIONS[current]


def valid_next_stages(current: DealStage) -> List[DealStage]:
    """Stages reachable in one step, in table order (empty when terminal)."""
    return list(VALID_STAGE_TRANSITIONS[DealStage(current)])


def is_terminal(stage: DealStage) -> bool:
    return DealStage(stage) in TERMINAL_STAGES


def transition_error_reason(
    current: DealStage, requested: DealStage
) -> Optional[str]:
    """Human-readable reason a transition is refused, or None if allowed."""
    if is_valid_transition(current, requested):
        return None

    current = DealStage(current)
    requested = DealStage(requested)
    if is_terminal(current):
        return (
            f"Deal is in terminal stage '{current.value}' and cannot be "
            f"transitioned to any other stage."
        )

    allowed = ", ".join(stage.value for stage in valid_next_stages(current))
    return (
        f"Cannot transition from '{current.value}' to '{requested.value}'. "
        f"Valid next stages: {allowed}."
    )


def assert_valid_transition(current: DealStage, requested: DealStage) -> None:
    """Raise if ``current -> requested`` is not allowed.

    Raises:
        InvalidTransitionError: Carrying the valid next stages and, for a
            terminal source stage, the terminal flag
    """
    reason = transition_error_reason(current, requested)
    if reason is None:
        return

    raise InvalidTransitionError(
        current=DealStage(current),
        requested=DealStage(requested),
        valid_next=valid_next_stages(current),
        terminal=is_terminal(current),
        reason=reason,
    )
