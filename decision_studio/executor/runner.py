"""Decision runner: drives one decision's workflow to completion.

The runner owns the decision's lifecycle around the orchestrator:
status transitions, mirroring events into the decision record, and
terminal signaling to the event store on failure or cancellation.

It runs in a background thread so the HTTP request that submitted the
decision returns immediately. Subscribers come and go independently;
a disconnecting client never stops the workflow.
"""

import logging
import threading
from typing import Callable, Optional

from decision_studio.decisions.schemas import DecisionRequest, DecisionStatus
from decision_studio.executor.decision_manager import (
    clear_cancellation,
    is_cancelled,
    record_event,
    record_insights,
    update_decision_status,
)
from decision_studio.executor.event_store import EventStore, get_event_store
from decision_studio.executor.insights import InsightAggregator
from decision_studio.executor.orchestrator import DecisionWorkflowOrchestrator

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Decision cancelled"

# Guards against the same decision being executed twice concurrently
_active_decisions: set[str] = set()
_active_decisions_lock = threading.Lock()


def execute_decision(
    decision_id: str,
    request: DecisionRequest,
    orchestrator: DecisionWorkflowOrchestrator,
    event_store: Optional[EventStore] = None,
    cancellation_check: Optional[Callable[[], bool]] = None,
) -> Optional[DecisionStatus]:
    """Run a decision in the calling thread.

    Returns the final status, or None if the decision was already being
    executed elsewhere.
    """
    if event_store is None:
        event_store = get_event_store()
    if cancellation_check is None:
        cancellation_check = lambda: is_cancelled(decision_id)  # noqa: E731

    with _active_decisions_lock:
        if decision_id in _active_decisions:
            logger.warning(
                f"DUPLICATE EXECUTION BLOCKED: decision {decision_id} is already running."
            )
            return None
        _active_decisions.add(decision_id)

    aggregator = InsightAggregator(decision_id)
    status = DecisionStatus.RUNNING
    try:
        update_decision_status(decision_id, DecisionStatus.RUNNING)
        if cancellation_check():
            raise InterruptedError(f"Decision {decision_id} cancelled before start")

        event_count = 0
        for event in orchestrator.run(
            decision_id, request,
            cancellation_check=cancellation_check,
            aggregator=aggregator,
        ):
            record_event(event)
            event_count += 1

        record_insights(decision_id, aggregator.snapshot())
        status = DecisionStatus.COMPLETED
        update_decision_status(decision_id, status)
        logger.info(
            f"Decision {decision_id} finished: {event_count} events, "
            f"{len(aggregator)} insights"
        )

    except InterruptedError:
        record_insights(decision_id, aggregator.snapshot())
        status = DecisionStatus.CANCELLED
        # Stream goes terminal first so a delete after the status flip can evict it
        event_store.fail(decision_id, CANCELLED_MESSAGE)
        update_decision_status(decision_id, status, error=CANCELLED_MESSAGE)
        logger.info(f"Decision {decision_id} cancelled via InterruptedError")

    except Exception as e:
        logger.error(f"Decision {decision_id} failed: {e}", exc_info=True)
        record_insights(decision_id, aggregator.snapshot())
        status = DecisionStatus.FAILED
        event_store.fail(decision_id, str(e))
        update_decision_status(decision_id, status, error=str(e))

    finally:
        clear_cancellation(decision_id)
        with _active_decisions_lock:
            _active_decisions.discard(decision_id)

    return status


def is_running(decision_id: str) -> bool:
    with _active_decisions_lock:
        return decision_id in _active_decisions


def start_decision_thread(
    decision_id: str,
    request: DecisionRequest,
    orchestrator: DecisionWorkflowOrchestrator,
    event_store: Optional[EventStore] = None,
) -> threading.Thread:
    """Start decision execution in a background thread.

    Returns immediately. The thread is a daemon so it won't block
    server shutdown.
    """
    thread = threading.Thread(
        target=execute_decision,
        args=(decision_id, request, orchestrator, event_store),
        name=f"decision-{decision_id}",
        daemon=True,
    )
    thread.start()
    logger.info(f"Started execution thread for decision {decision_id}")
    return thread
