"""Intelligence role capability.

A role analyzes one decision from one perspective and streams its
progress as DecisionEvents. The orchestrator does not care how a role
works, only that it satisfies IntelligenceRole.
"""

from typing import Any, Callable, Iterator, Mapping, Optional, Protocol, runtime_checkable

from decision_studio.decisions.schemas import (
    AnalysisPhase,
    DecisionEvent,
    DecisionRequest,
    RoleInsight,
)
from decision_studio.personas.schemas import PersonaContext


@runtime_checkable
class IntelligenceRole(Protocol):
    """Protocol for analysis units run by the workflow orchestrator.

    analyze() yields events in the role's own order. Sequence numbers set
    here are role-local; the orchestrator renumbers every event. A role
    may raise at any point; the orchestrator turns that into an error
    event for the role and carries on.
    """

    role_name: str
    display_name: str
    description: str
    focus_areas: list[str]
    output_type: str
    workflow_order: int

    def analyze(
        self,
        decision_id: str,
        request: DecisionRequest,
        persona_context: PersonaContext,
        prior_insights: Mapping[str, RoleInsight],
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[DecisionEvent]: ...


class RoleBase:
    """Shared metadata and event construction for concrete roles."""

    def __init__(
        self,
        role_name: str,
        display_name: str,
        description: str = "",
        focus_areas: Optional[list[str]] = None,
        output_type: str = "Analysis",
        workflow_order: int = 100,
    ):
        self.role_name = role_name
        self.display_name = display_name
        self.description = description
        self.focus_areas = list(focus_areas or [])
        self.output_type = output_type
        self.workflow_order = workflow_order

    def create_event(
        self,
        decision_id: str,
        persona: str,
        phase: AnalysisPhase,
        message: str,
        sequence_number: int = 0,
        confidence: Optional[float] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> DecisionEvent:
        return DecisionEvent(
            decision_id=decision_id,
            persona=persona,
            role_name=self.role_name,
            phase=phase,
            message=message,
            confidence=confidence,
            data=data,
            sequence_number=sequence_number,
        )

    def describe(self) -> dict[str, Any]:
        """Role metadata for catalog listings."""
        return {
            "name": self.role_name,
            "display_name": self.display_name,
            "description": self.description,
            "focus_areas": self.focus_areas,
            "output_type": self.output_type,
            "workflow_order": self.workflow_order,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.role_name!r})"
