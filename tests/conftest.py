import time
from typing import Optional

import pytest

from decision_studio.decisions.schemas import AnalysisPhase, DecisionEvent, DecisionRequest
from decision_studio.executor import decision_manager
from decision_studio.executor.event_store import EventStore
from decision_studio.executor.orchestrator import DecisionWorkflowOrchestrator
from decision_studio.personas.registry import PersonaCatalog
from decision_studio.roles.base import RoleBase


class ScriptedRole(RoleBase):
    """Fake role that yields a fixed script of events.

    fail_at: index in the script at which to raise instead of yielding.
    """

    def __init__(
        self,
        role_name: str,
        workflow_order: int = 100,
        reports: int = 2,
        fail_at: Optional[int] = None,
        delay: float = 0.0,
        confidence: float = 0.8,
    ):
        super().__init__(
            role_name=role_name,
            display_name=role_name.replace("_", " ").title(),
            workflow_order=workflow_order,
        )
        self.reports = reports
        self.fail_at = fail_at
        self.delay = delay
        self.confidence = confidence
        self.seen_prior: list[dict] = []

    def analyze(self, decision_id, request, persona_context, prior_insights, cancellation_check=None):
        self.seen_prior.append(dict(prior_insights))
        script = [(AnalysisPhase.STARTING, "starting"), (AnalysisPhase.ANALYZING, "analyzing")]
        script += [(AnalysisPhase.REPORTING, f"report {i}") for i in range(self.reports)]
        script.append((AnalysisPhase.COMPLETED, "done"))

        for i, (phase, message) in enumerate(script):
            if self.fail_at is not None and i >= self.fail_at:
                raise RuntimeError(f"{self.role_name} exploded")
            if self.delay:
                time.sleep(self.delay)
            if cancellation_check and cancellation_check():
                raise InterruptedError(f"{self.role_name} cancelled")
            if phase == AnalysisPhase.COMPLETED:
                yield self.create_event(
                    decision_id, request.persona, phase, f"{self.role_name} {message}", i,
                    confidence=self.confidence,
                    data={"key_findings": [f"{self.role_name} finding"], "full_analysis": "..."},
                )
            else:
                yield self.create_event(decision_id, request.persona, phase, f"{self.role_name} {message}", i)


def make_event(decision_id: str, seq: int, role: str = "shopper_insights",
               phase: AnalysisPhase = AnalysisPhase.REPORTING) -> DecisionEvent:
    return DecisionEvent(
        decision_id=decision_id,
        persona="grocery",
        role_name=role,
        phase=phase,
        message=f"event {seq}",
        sequence_number=seq,
    )


@pytest.fixture(autouse=True)
def clean_decisions():
    decision_manager.clear_decisions()
    yield
    decision_manager.clear_decisions()


@pytest.fixture
def event_store() -> EventStore:
    return EventStore()


@pytest.fixture
def persona_catalog() -> PersonaCatalog:
    catalog = PersonaCatalog()
    catalog.load()
    return catalog


@pytest.fixture
def decision_request() -> DecisionRequest:
    return DecisionRequest(
        decision_text="Should we run a 20% off promotion on sparkling water?",
        persona="grocery",
        region="Southeast",
    )


@pytest.fixture
def scripted_roles() -> dict[str, ScriptedRole]:
    return {
        "decision_framer": ScriptedRole("decision_framer", workflow_order=1),
        "shopper_insights": ScriptedRole("shopper_insights", workflow_order=2),
        "demand_forecasting": ScriptedRole("demand_forecasting", workflow_order=3),
        "margin_impact": ScriptedRole("margin_impact", workflow_order=5),
        "executive_recommendation": ScriptedRole("executive_recommendation", workflow_order=8),
    }


@pytest.fixture
def orchestrator(scripted_roles, event_store, persona_catalog) -> DecisionWorkflowOrchestrator:
    return DecisionWorkflowOrchestrator(
        roles=scripted_roles.values(),
        event_store=event_store,
        persona_catalog=persona_catalog,
    )
