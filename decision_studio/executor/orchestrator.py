"""Decision workflow orchestrator.

Runs one decision through three stages and forwards every event to the
event store as it is produced:

    framing (one role) -> analysis (N roles in parallel) -> synthesis (one role)

Ordering: every event, milestone or role event, gets its sequence number
from one per-decision SequenceCounter at the moment it is appended. Only
the thread driving run() appends; parallel roles run on worker threads
and hand their raw events to that thread through a merge queue. So the
log order always equals the numbering order.

Failure containment: a role that raises ends its own stream with a single
error event. The workflow carries on and still reaches its completed
milestone. Only cancellation (InterruptedError) or a fault in the
orchestrator itself propagates out of run().
"""

import itertools
import logging
import os
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Iterator, Optional

from decision_studio.decisions.schemas import (
    WORKFLOW_ROLE,
    AnalysisPhase,
    DecisionEvent,
    DecisionRequest,
    RoleInsight,
)
from decision_studio.executor.event_store import EventStore
from decision_studio.executor.insights import InsightAggregator
from decision_studio.personas.registry import PersonaCatalog
from decision_studio.personas.schemas import PersonaContext
from decision_studio.roles.base import IntelligenceRole

logger = logging.getLogger(__name__)

# Max concurrent analysis roles per decision (to avoid flooding the API)
MAX_PARALLEL_ROLES = int(os.environ.get("MAX_PARALLEL_ROLES", "6"))

# How often the merge loop re-checks cancellation while roles are quiet
MERGE_POLL_INTERVAL = 0.25

DEFAULT_FRAMER_ROLE = "decision_framer"
DEFAULT_SYNTHESIS_ROLE = "executive_recommendation"


class SequenceCounter:
    """Per-decision source of unique, strictly increasing sequence numbers.

    next() on itertools.count is a single atomic step, so no lock is held.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._last = start - 1

    def next(self) -> int:
        value = next(self._counter)
        self._last = value
        return value

    @property
    def last(self) -> int:
        return self._last


class _RoleDone:
    """Merge-queue marker: a parallel role's stream has ended."""

    __slots__ = ("role_name", "error")

    def __init__(self, role_name: str, error: Optional[BaseException] = None):
        self.role_name = role_name
        self.error = error


class _RunState:
    """Bookkeeping for one run(); touched only by the appending thread."""

    def __init__(self, decision_id: str, aggregator: InsightAggregator):
        self.decision_id = decision_id
        self.counter = SequenceCounter()
        self.aggregator = aggregator
        self.roles_run: list[str] = []
        self.completed: set[str] = set()
        self.failed: set[str] = set()


class DecisionWorkflowOrchestrator:
    """Sequences roles for a decision and streams their events.

    Usage:
        orchestrator = DecisionWorkflowOrchestrator(
            roles=build_roles(),
            event_store=get_event_store(),
            persona_catalog=get_persona_catalog(),
        )
        for event in orchestrator.run(decision_id, request):
            ...
    """

    def __init__(
        self,
        roles: Iterable[IntelligenceRole],
        event_store: EventStore,
        persona_catalog: PersonaCatalog,
        framer_role: Optional[str] = DEFAULT_FRAMER_ROLE,
        analysis_roles: Optional[list[str]] = None,
        synthesis_role: Optional[str] = DEFAULT_SYNTHESIS_ROLE,
        max_parallel: int = MAX_PARALLEL_ROLES,
    ):
        self.roles: dict[str, IntelligenceRole] = {}
        for role in roles:
            if role.role_name in self.roles:
                logger.warning(f"Duplicate role {role.role_name}, keeping the last one")
            self.roles[role.role_name] = role

        self.event_store = event_store
        self.persona_catalog = persona_catalog
        self.framer_role = framer_role
        self.synthesis_role = synthesis_role
        self.max_parallel = max(1, max_parallel)

        if analysis_roles is None:
            staged = {framer_role, synthesis_role}
            analysis_roles = [
                r.role_name
                for r in sorted(self.roles.values(), key=lambda r: (r.workflow_order, r.role_name))
                if r.role_name not in staged
            ]
        self.analysis_roles = list(analysis_roles)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        decision_id: str,
        request: DecisionRequest,
        cancellation_check: Optional[Callable[[], bool]] = None,
        aggregator: Optional[InsightAggregator] = None,
    ) -> Iterator[DecisionEvent]:
        """Run the full workflow, yielding each event after it is appended.

        Marks the decision complete in the event store after the final
        milestone. Does not mark it failed: callers own failure signaling
        (see runner.execute_decision).

        Raises:
            KeyError: If the request's persona is unknown
            InterruptedError: If cancellation_check returns True
        """
        persona_context = self.persona_catalog.lookup(request.persona)
        if aggregator is None:
            aggregator = InsightAggregator(decision_id)
        state = _RunState(decision_id, aggregator)
        start_time = time.time()

        logger.info(
            f"Starting decision workflow {decision_id} (persona={request.persona}, "
            f"analysis_roles={len(self.analysis_roles)})"
        )

        yield self._milestone(
            state, request, AnalysisPhase.STARTING,
            "Retail Intelligence Studio is evaluating your decision...",
        )

        # Stage 1: framing
        framer = self._resolve(self.framer_role, "framing")
        if framer is not None:
            yield from self._run_sequential(
                state, framer, request, persona_context, cancellation_check,
            )

        # Stage 2: parallel analysis
        analysts = [r for r in (self._resolve(n, "analysis") for n in self.analysis_roles) if r]
        if analysts:
            self._check_cancelled(cancellation_check, decision_id, "before analysis")
            yield self._milestone(
                state, request, AnalysisPhase.ANALYZING,
                "Running specialized analysis in parallel...",
                data={"roles": [r.role_name for r in analysts]},
            )
            yield from self._run_parallel(
                state, analysts, request, persona_context, cancellation_check,
            )

        # Stage 3: synthesis
        synthesizer = self._resolve(self.synthesis_role, "synthesis")
        if synthesizer is not None:
            self._check_cancelled(cancellation_check, decision_id, "before synthesis")
            yield self._milestone(
                state, request, AnalysisPhase.REPORTING,
                "Synthesizing insights for executive recommendation...",
            )
            yield from self._run_sequential(
                state, synthesizer, request, persona_context, cancellation_check,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        yield self._milestone(
            state, request, AnalysisPhase.COMPLETED,
            "Decision evaluation complete.",
            data={
                "total_roles": len(state.roles_run),
                "completed_roles": len(state.completed),
                "failed_roles": len(state.failed),
                "duration_ms": duration_ms,
            },
        )
        self.event_store.complete(decision_id)

        logger.info(
            f"Decision workflow {decision_id} complete in {duration_ms}ms: "
            f"{len(state.completed)}/{len(state.roles_run)} roles completed, "
            f"{len(state.failed)} failed, {state.counter.last} events"
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_sequential(
        self,
        state: _RunState,
        role: IntelligenceRole,
        request: DecisionRequest,
        persona_context: PersonaContext,
        cancellation_check: Optional[Callable[[], bool]],
    ) -> Iterator[DecisionEvent]:
        """Run one role on this thread with every insight gathered so far."""
        state.roles_run.append(role.role_name)
        for event in self._execute_role(
            role, state.decision_id, request, persona_context,
            state.aggregator.snapshot(), cancellation_check,
        ):
            yield self._forward(state, event)

    def _run_parallel(
        self,
        state: _RunState,
        roles: list[IntelligenceRole],
        request: DecisionRequest,
        persona_context: PersonaContext,
        cancellation_check: Optional[Callable[[], bool]],
    ) -> Iterator[DecisionEvent]:
        """Run roles concurrently and forward their events as they arrive.

        Each role gets the insight snapshot taken at launch. Workers only
        put raw events on the merge queue; numbering and appending happen
        here, on the run() thread.
        """
        merge: queue.Queue = queue.Queue()
        prior_insights = state.aggregator.snapshot()

        def run_one(role: IntelligenceRole) -> None:
            error: Optional[BaseException] = None
            try:
                for event in self._execute_role(
                    role, state.decision_id, request, persona_context,
                    prior_insights, cancellation_check,
                ):
                    merge.put(event)
            except BaseException as e:  # handed to the merge loop, not swallowed
                error = e
            finally:
                merge.put(_RoleDone(role.role_name, error))

        state.roles_run.extend(r.role_name for r in roles)
        pending = {r.role_name for r in roles}
        interrupted: Optional[BaseException] = None

        with ThreadPoolExecutor(
            max_workers=min(self.max_parallel, len(roles)),
            thread_name_prefix=f"decision-{state.decision_id}",
        ) as executor:
            for role in roles:
                executor.submit(run_one, role)

            while pending:
                if interrupted is None and cancellation_check and cancellation_check():
                    # Keep draining so workers can finish; they see the same check
                    interrupted = InterruptedError(
                        f"Decision {state.decision_id} cancelled during parallel analysis"
                    )
                try:
                    item = merge.get(timeout=MERGE_POLL_INTERVAL)
                except queue.Empty:
                    continue

                if isinstance(item, _RoleDone):
                    pending.discard(item.role_name)
                    if item.error is not None and interrupted is None:
                        interrupted = item.error
                    logger.debug(
                        f"Parallel role {item.role_name} finished for decision "
                        f"{state.decision_id} ({len(pending)} still running)"
                    )
                    continue

                if interrupted is None:
                    yield self._forward(state, item)

        if interrupted is not None:
            raise interrupted

    # ------------------------------------------------------------------
    # Role execution and event forwarding
    # ------------------------------------------------------------------

    def _execute_role(
        self,
        role: IntelligenceRole,
        decision_id: str,
        request: DecisionRequest,
        persona_context: PersonaContext,
        prior_insights: dict[str, RoleInsight],
        cancellation_check: Optional[Callable[[], bool]],
    ) -> Iterator[DecisionEvent]:
        """Yield a role's raw events, converting a failure into one error event.

        InterruptedError is not contained.
        """
        start_time = time.time()
        try:
            for event in role.analyze(
                decision_id, request, persona_context, prior_insights,
                cancellation_check=cancellation_check,
            ):
                self._check_cancelled(cancellation_check, decision_id, f"during {role.role_name}")
                yield event
        except InterruptedError:
            raise
        except Exception as e:
            logger.error(
                f"Role {role.role_name} failed for decision {decision_id} "
                f"after {int((time.time() - start_time) * 1000)}ms: {e}",
                exc_info=True,
            )
            yield DecisionEvent(
                decision_id=decision_id,
                persona=request.persona,
                role_name=role.role_name,
                phase=AnalysisPhase.ERROR,
                message=f"Analysis error: {e}",
            )

    def _forward(self, state: _RunState, event: DecisionEvent) -> DecisionEvent:
        """Number, append, and (for completed role events) record an insight."""
        numbered = event.with_sequence(state.counter.next())
        self.event_store.append(numbered)

        if numbered.role_name != WORKFLOW_ROLE:
            if numbered.phase == AnalysisPhase.COMPLETED:
                # Recorded only now that the completed event is in the log
                state.aggregator.record(RoleInsight.from_event(numbered))
                state.completed.add(numbered.role_name)
            elif numbered.phase == AnalysisPhase.ERROR:
                state.failed.add(numbered.role_name)
        return numbered

    def _milestone(
        self,
        state: _RunState,
        request: DecisionRequest,
        phase: AnalysisPhase,
        message: str,
        data: Optional[dict] = None,
    ) -> DecisionEvent:
        event = DecisionEvent(
            decision_id=state.decision_id,
            persona=request.persona,
            role_name=WORKFLOW_ROLE,
            phase=phase,
            message=message,
            data=data,
        )
        return self._forward(state, event)

    def _resolve(self, role_name: Optional[str], stage: str) -> Optional[IntelligenceRole]:
        if not role_name:
            return None
        role = self.roles.get(role_name)
        if role is None:
            logger.warning(f"Role {role_name} not found, skipping it in the {stage} stage")
        return role

    @staticmethod
    def _check_cancelled(
        cancellation_check: Optional[Callable[[], bool]],
        decision_id: str,
        where: str,
    ) -> None:
        if cancellation_check and cancellation_check():
            raise InterruptedError(f"Decision {decision_id} cancelled {where}")
