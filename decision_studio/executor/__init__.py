"""Decision execution: event store, insight aggregation, orchestration, lifecycle."""

from decision_studio.executor.event_store import (
    DecisionStreamError,
    EventStore,
    Subscription,
    get_event_store,
)
from decision_studio.executor.insights import InsightAggregator
from decision_studio.executor.orchestrator import (
    DecisionWorkflowOrchestrator,
    SequenceCounter,
)

__all__ = [
    "DecisionStreamError",
    "DecisionWorkflowOrchestrator",
    "EventStore",
    "InsightAggregator",
    "SequenceCounter",
    "Subscription",
    "get_event_store",
]
