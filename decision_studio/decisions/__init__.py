"""Decision records: requests, events, insights, and lifecycle state."""

from decision_studio.decisions.schemas import (
    WORKFLOW_ROLE,
    AnalysisPhase,
    Decision,
    DecisionEvent,
    DecisionRequest,
    DecisionStatus,
    RoleInsight,
)

__all__ = [
    "WORKFLOW_ROLE",
    "AnalysisPhase",
    "Decision",
    "DecisionEvent",
    "DecisionRequest",
    "DecisionStatus",
    "RoleInsight",
]
