"""Decision lifecycle management.

Handles:
- Decision creation and status transitions
- Mirroring streamed events and role insights into the decision record
- Cancellation (flag-based, checked during execution)
- Listing and deletion

State lives in memory for the life of the process. Records are copied on
the way out so callers never hold a reference that the runner thread is
still mutating.
"""

import logging
import threading
from typing import Optional

from decision_studio.decisions.schemas import (
    Decision,
    DecisionEvent,
    DecisionRequest,
    DecisionStatus,
    DecisionSummary,
    RoleInsight,
    utc_now,
)
from decision_studio.personas.schemas import PersonaContext

logger = logging.getLogger(__name__)

_decisions: dict[str, Decision] = {}
_decisions_lock = threading.Lock()

# In-memory cancellation flags (per decision_id)
# Checked at high frequency during LLM streaming
_cancellation_flags: dict[str, bool] = {}
_flags_lock = threading.Lock()

ACTIVE_STATUSES = (DecisionStatus.PENDING, DecisionStatus.RUNNING)
TERMINAL_STATUSES = (DecisionStatus.COMPLETED, DecisionStatus.FAILED, DecisionStatus.CANCELLED)


def create_decision(
    decision_id: str,
    request: DecisionRequest,
    persona_context: PersonaContext,
) -> Decision:
    """Create a pending decision record.

    Raises:
        ValueError: If a decision with this id already exists
    """
    decision = Decision(
        decision_id=decision_id,
        request=request,
        persona_context=persona_context,
    )
    with _decisions_lock:
        if decision_id in _decisions:
            raise ValueError(f"Decision {decision_id} already exists")
        _decisions[decision_id] = decision

    logger.info(f"Created decision {decision_id} (persona={request.persona})")
    return decision.model_copy(deep=True)


def get_decision(decision_id: str) -> Optional[Decision]:
    with _decisions_lock:
        decision = _decisions.get(decision_id)
        return decision.model_copy(deep=True) if decision else None


def list_decisions(skip: int = 0, take: int = 20) -> list[DecisionSummary]:
    """List decisions, newest first."""
    with _decisions_lock:
        # Insertion order is creation order
        decisions = list(reversed(list(_decisions.values())))
        page = decisions[max(skip, 0):max(skip, 0) + max(take, 0)]
        return [
            DecisionSummary(
                decision_id=d.decision_id,
                decision_text=d.request.decision_text,
                persona=d.request.persona,
                status=d.status,
                created_at=d.created_at,
                started_at=d.started_at,
                completed_at=d.completed_at,
            )
            for d in page
        ]


def count_decisions() -> int:
    with _decisions_lock:
        return len(_decisions)


def update_decision_status(
    decision_id: str,
    status: DecisionStatus,
    error: Optional[str] = None,
) -> None:
    """Update decision status and timestamps."""
    now = utc_now()
    with _decisions_lock:
        decision = _decisions.get(decision_id)
        if decision is None:
            logger.warning(f"Cannot update status of unknown decision {decision_id}")
            return
        decision.status = status
        if status == DecisionStatus.RUNNING:
            decision.started_at = now
        elif status in TERMINAL_STATUSES:
            decision.completed_at = now
            decision.error = error

    logger.info(
        f"Decision {decision_id} status → {status.value}" + (f" (error: {error})" if error else "")
    )


def record_event(event: DecisionEvent) -> None:
    """Append a streamed event to its decision's record."""
    with _decisions_lock:
        decision = _decisions.get(event.decision_id)
        if decision is None:
            return
        decision.events.append(event)


def record_insights(decision_id: str, insights: dict[str, RoleInsight]) -> None:
    """Merge role insights into the decision record."""
    with _decisions_lock:
        decision = _decisions.get(decision_id)
        if decision is None:
            return
        decision.role_insights.update(insights)


def delete_decision(decision_id: str) -> bool:
    """Delete a decision record.

    Only allowed for completed/failed/cancelled decisions.
    """
    with _decisions_lock:
        decision = _decisions.get(decision_id)
        if decision is None:
            return False
        if decision.status in ACTIVE_STATUSES:
            logger.warning(f"Cannot delete running decision {decision_id}")
            return False
        del _decisions[decision_id]

    clear_cancellation(decision_id)
    logger.info(f"Deleted decision {decision_id}")
    return True


def clear_decisions() -> None:
    """Drop every decision and cancellation flag."""
    with _decisions_lock:
        _decisions.clear()
    with _flags_lock:
        _cancellation_flags.clear()


# --- Cancellation ---

def request_cancellation(decision_id: str) -> bool:
    """Request cancellation of a pending or running decision.

    Only sets the flag; the runner moves the decision to cancelled once
    the workflow observes it.

    Returns True if the decision was active and is now being cancelled.
    """
    decision = get_decision(decision_id)
    if decision is None:
        return False

    if decision.status not in ACTIVE_STATUSES:
        logger.warning(
            f"Cannot cancel decision {decision_id}: status is {decision.status.value}"
        )
        return False

    with _flags_lock:
        _cancellation_flags[decision_id] = True

    logger.info(f"Cancellation requested for decision {decision_id}")
    return True


def is_cancelled(decision_id: str) -> bool:
    """Fast-path check used during LLM streaming."""
    with _flags_lock:
        return _cancellation_flags.get(decision_id, False)


def clear_cancellation(decision_id: str) -> None:
    """Clear cancellation flag (for decision cleanup)."""
    with _flags_lock:
        _cancellation_flags.pop(decision_id, None)
