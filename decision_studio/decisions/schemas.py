"""Decision-side schemas: requests, streamed events, role insights, lifecycle.

Events are the unit of everything observable about a decision. They are
immutable once created; the orchestrator re-numbers them with
``with_sequence()`` before they reach the event store.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from decision_studio.personas.schemas import PersonaContext

# Role name used for orchestrator-level milestone events
WORKFLOW_ROLE = "workflow"

DEFAULT_INSIGHT_CONFIDENCE = 0.75


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_decision_id() -> str:
    return uuid.uuid4().hex[:12]


class DecisionStatus(str, Enum):
    """Decision lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AnalysisPhase(str, Enum):
    """Phases a role (or the workflow itself) moves through."""
    STARTING = "starting"
    ANALYZING = "analyzing"
    REPORTING = "reporting"
    COMPLETED = "completed"
    ERROR = "error"


class DecisionRequest(BaseModel):
    """A business decision submitted for evaluation."""

    decision_text: str = Field(
        ..., min_length=1,
        description="The decision to evaluate, e.g. 'Should we run a 20% off promotion on sparkling water?'",
    )
    persona: str = Field(..., description="Persona key from the persona catalog")
    use_sample_data: bool = Field(
        default=True,
        description="When true, roles reason with the persona's baseline assumptions",
    )
    region: Optional[str] = None
    category: Optional[str] = None
    timeframe: Optional[str] = None


class DecisionEvent(BaseModel):
    """One streamed progress/result record for a decision."""

    model_config = ConfigDict(frozen=True)

    decision_id: str
    persona: str
    role_name: str = Field(description="Role that produced the event, or 'workflow'")
    phase: AnalysisPhase
    message: str
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    data: Optional[dict[str, Any]] = None
    sequence_number: int = 0
    timestamp: str = Field(default_factory=utc_now)

    def with_sequence(self, sequence_number: int) -> "DecisionEvent":
        """Return a copy carrying a new sequence number."""
        return self.model_copy(update={"sequence_number": sequence_number})

    @property
    def is_workflow_event(self) -> bool:
        return self.role_name == WORKFLOW_ROLE


class RoleInsight(BaseModel):
    """The durable summary a completed role contributes to later stages."""

    role_name: str
    summary: str
    key_findings: list[str] = Field(default_factory=list)
    confidence: float = Field(default=DEFAULT_INSIGHT_CONFIDENCE, ge=0.0, le=1.0)
    data: Optional[dict[str, Any]] = None

    @classmethod
    def from_event(cls, event: DecisionEvent) -> "RoleInsight":
        """Build an insight from a role's ``completed`` event."""
        data = event.data or {}
        findings = data.get("key_findings")
        if not (isinstance(findings, list) and all(isinstance(f, str) for f in findings)):
            findings = [event.message]

        extra = {k: v for k, v in data.items() if k not in ("key_findings", "full_analysis")}
        return cls(
            role_name=event.role_name,
            summary=event.message,
            key_findings=findings,
            confidence=event.confidence if event.confidence is not None else DEFAULT_INSIGHT_CONFIDENCE,
            data=extra or None,
        )


class Decision(BaseModel):
    """Full state of one decision evaluation."""

    decision_id: str = Field(default_factory=new_decision_id)
    request: DecisionRequest
    persona_context: PersonaContext
    status: DecisionStatus = DecisionStatus.PENDING
    error: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    events: list[DecisionEvent] = Field(default_factory=list)
    role_insights: dict[str, RoleInsight] = Field(
        default_factory=dict,
        description="Role name -> insight",
    )


class DecisionSummary(BaseModel):
    """Listing view of a decision (no events)."""

    decision_id: str
    decision_text: str
    persona: str
    status: DecisionStatus
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class DecisionAccepted(BaseModel):
    """Response for a submitted decision."""

    decision_id: str
    status: str = "accepted"
    events_url: str
