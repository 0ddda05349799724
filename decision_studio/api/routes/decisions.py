"""Decision API routes: submission, status, live event streaming.

Endpoints:
    POST   /api/decisions                      Submit a decision (202)
    GET    /api/decisions                      List decisions
    GET    /api/decisions/{id}                 Full decision record
    GET    /api/decisions/{id}/events          Server-Sent Events stream
    GET    /api/decisions/{id}/debug-events    Event log snapshot with per-role stats
    POST   /api/decisions/{id}/cancel          Cooperative cancellation
    DELETE /api/decisions/{id}                 Delete a finished decision
"""

import asyncio
import json
import logging
from collections import Counter
from typing import AsyncIterator, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from decision_studio.decisions.schemas import (
    Decision,
    DecisionAccepted,
    DecisionRequest,
    new_decision_id,
)
from decision_studio.executor.decision_manager import (
    count_decisions,
    create_decision,
    delete_decision,
    get_decision,
    list_decisions,
    request_cancellation,
)
from decision_studio.executor.event_store import (
    DecisionStreamError,
    Subscription,
    get_event_store,
)
from decision_studio.executor.orchestrator import DecisionWorkflowOrchestrator
from decision_studio.executor.runner import start_decision_thread
from decision_studio.personas.registry import get_persona_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decisions", tags=["decisions"])

# Orchestrator shared by every submitted decision; built on first use
_orchestrator: Optional[DecisionWorkflowOrchestrator] = None

# Upper bound on one blocking read while streaming events to a client
STREAM_POLL_INTERVAL = 0.25


def init_orchestrator(orchestrator: DecisionWorkflowOrchestrator) -> None:
    """Install the orchestrator used for new decisions."""
    global _orchestrator
    _orchestrator = orchestrator


def get_orchestrator() -> DecisionWorkflowOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        from decision_studio.roles.templated import build_roles

        _orchestrator = DecisionWorkflowOrchestrator(
            roles=build_roles(),
            event_store=get_event_store(),
            persona_catalog=get_persona_catalog(),
        )
    return _orchestrator


def _sse(payload: str) -> str:
    return f"data: {payload}\n\n"


def _control_frame(**fields) -> str:
    return _sse(json.dumps(fields, separators=(",", ":")))


async def stream_events(
    subscription: Subscription,
    poll_interval: float = STREAM_POLL_INTERVAL,
) -> AsyncIterator[str]:
    """Render a subscription as SSE frames, ending with a control frame.

    Each read runs on the default executor with a bounded wait. A client
    disconnect cancels this generator, which closes the subscription and
    wakes the pending read, even on a decision that is not producing events.
    """
    loop = asyncio.get_running_loop()
    try:
        while not subscription.finished:
            event = await loop.run_in_executor(None, subscription.read, poll_interval)
            if event is not None:
                yield _sse(event.model_dump_json())
        yield _control_frame(type="complete")
    except DecisionStreamError as e:
        yield _control_frame(type="error", message=e.message)
    finally:
        subscription.close()


@router.post("", status_code=202, response_model=DecisionAccepted)
async def submit_decision(request: DecisionRequest):
    """Submit a decision for evaluation.

    Creates the decision record, starts the workflow in a background
    thread, and returns the URL to stream its events from.
    """
    catalog = get_persona_catalog()
    persona_context = catalog.get(request.persona)
    if persona_context is None:
        raise HTTPException(status_code=404, detail=f"Persona not found: {request.persona}")

    orchestrator = get_orchestrator()
    decision_id = new_decision_id()
    create_decision(decision_id, request, persona_context)
    start_decision_thread(decision_id, request, orchestrator, orchestrator.event_store)

    return DecisionAccepted(
        decision_id=decision_id,
        events_url=f"/api/decisions/{decision_id}/events",
    )


@router.get("")
async def list_all_decisions(
    skip: int = Query(default=0, ge=0),
    take: int = Query(default=20, ge=1, le=100),
):
    """List decisions, newest first."""
    decisions = list_decisions(skip=skip, take=take)
    return {"decisions": decisions, "count": len(decisions), "total": count_decisions()}


@router.get("/{decision_id}", response_model=Decision)
async def get_decision_record(decision_id: str):
    decision = get_decision(decision_id)
    if decision is None:
        raise HTTPException(status_code=404, detail=f"Decision not found: {decision_id}")
    return decision


@router.get("/{decision_id}/events")
async def stream_decision_events(decision_id: str):
    """Stream a decision's events as Server-Sent Events.

    Replays everything so far, then follows live events until the
    decision completes ({"type":"complete"}) or fails
    ({"type":"error","message":...}). Disconnecting does not affect the
    running decision.
    """
    if get_decision(decision_id) is None:
        raise HTTPException(status_code=404, detail=f"Decision not found: {decision_id}")

    # Subscribe now so nothing appended before the first read is missed
    subscription = get_orchestrator().event_store.subscribe(decision_id)
    return StreamingResponse(
        stream_events(subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{decision_id}/debug-events")
async def debug_decision_events(decision_id: str):
    """Event log snapshot plus per-role counts and phase progressions."""
    store = get_orchestrator().event_store
    events = store.get_snapshot(decision_id)
    if not events and get_decision(decision_id) is None:
        raise HTTPException(status_code=404, detail=f"Decision not found: {decision_id}")

    phases_by_role: dict[str, list[str]] = {}
    for event in events:
        phases_by_role.setdefault(event.role_name, []).append(event.phase.value)

    return {
        "decision_id": decision_id,
        "total_events": len(events),
        "is_complete": store.is_complete(decision_id),
        "error": store.error(decision_id),
        "subscribers": store.subscriber_count(decision_id),
        "events_by_role": dict(Counter(e.role_name for e in events)),
        "phases_by_role": phases_by_role,
        "events": events,
    }


@router.post("/{decision_id}/cancel")
async def cancel_decision(decision_id: str):
    """Request cancellation of a pending or running decision."""
    if not request_cancellation(decision_id):
        decision = get_decision(decision_id)
        if decision is None:
            raise HTTPException(status_code=404, detail=f"Decision not found: {decision_id}")
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel decision in status {decision.status.value}",
        )
    return {"decision_id": decision_id, "status": "cancelling", "message": "Cancellation requested"}


@router.delete("/{decision_id}")
async def delete_decision_record(decision_id: str):
    """Delete a finished decision and evict its event stream."""
    if not delete_decision(decision_id):
        decision = get_decision(decision_id)
        if decision is None:
            raise HTTPException(status_code=404, detail=f"Decision not found: {decision_id}")
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete decision in status {decision.status.value}",
        )
    get_orchestrator().event_store.evict(decision_id)
    return {"decision_id": decision_id, "deleted": True}
