"""Deal creation and stage progression."""

import datetime as dt
import logging
from typing import Any, Callable, Optional

from psa_engine.exceptions import MissingReasonError
from psa_engine.models.deal import Deal
from psa_engine.models.enums import DealStage
from psa_engine.store.record_store import DEALS, RecordStore
from psa_engine.utils.logging_utils import LogContext, log_function_call
from psa_engine.workflow.stage_graph import assert_valid_transition, is_terminal

logger = logging.getLogger(__name__)


class DealService:
    """Moves deals through the stage graph.

    Normal moves must follow the graph. ``override=True`` lets an
    administrator correct a deal's stage outside the graph; it requires a
    reason and is always written to the audit log at WARNING.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.store = store
        self._clock = clock or dt.datetime.now

    def get_deal(self, deal_id: str) -> Deal:
        return Deal.from_record(self.store.require(DEALS, deal_id))

    def create_deal(self, **fields: Any) -> Deal:
        """Create a deal at the Lead stage.

        Any ``stage`` passed in is ignored.
        """
        fields.pop("stage", None)
        deal = Deal(**fields)
        with self.store.transaction():
            deal.id = self.store.insert(DEALS, deal.to_record())
        logger.info(
            f"Created deal {deal.id} at {deal.stage.value}",
            extra={"deal_id": deal.id},
        )
        return deal

    @log_function_call
    def transition(
        self,
        deal_id: str,
        to_stage: DealStage,
        *,
        actor_id: Optional[str] = None,
        override: bool = False,
        reason: Optional[str] = None,
    ) -> Deal:
        """Move a deal to ``to_stage``.

        Args:
            deal_id: Deal to move
            to_stage: Requested stage
            actor_id: User performing the move, recorded in the audit log
            override: Bypass the stage graph (administrative correction)
            reason: Required with ``override``; stored as ``lost_reason``
                when moving to Lost

        Returns:
            The updated deal

        Raises:
            InvalidTransitionError: If the move is not in the graph and no
                override was given
            MissingReasonError: If ``override`` is set without a reason
            NotFoundError: If the deal does not exist
        """
        to_stage = DealStage(to_stage)
        with LogContext(deal_id=deal_id), self.store.transaction():
            deal = self.get_deal(deal_id)
            current = deal.stage

            if current == to_stage:
                return deal

            if override:
                if not reason or not reason.strip():
                    raise MissingReasonError("override a deal stage", deal_id)
                logger.warning(
                    f"Stage override on deal {deal_id}: "
                    f"{current.value} -> {to_stage.value} by {actor_id}: {reason.strip()}",
                    extra={
                        "audit": "stage_override",
                        "actor_id": actor_id,
                        "from_stage": current.value,
                        "to_stage": to_stage.value,
                    },
                )
            else:
                assert_valid_transition(current, to_stage)

            updates: dict = {"stage": to_stage}
            if is_terminal(to_stage):
                updates["closed_at"] = self._clock()
            if to_stage == DealStage.LOST and reason:
                updates["lost_reason"] = reason.strip()

            self.store.patch(DEALS, deal_id, updates)
            logger.info(f"Deal {deal_id} moved {current.value} -> {to_stage.value}")
            return self.get_deal(deal_id)
