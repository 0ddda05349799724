import threading

import pytest

from decision_studio.decisions.schemas import WORKFLOW_ROLE, AnalysisPhase
from decision_studio.executor.insights import InsightAggregator
from decision_studio.executor.orchestrator import DecisionWorkflowOrchestrator, SequenceCounter

from conftest import ScriptedRole

ROLE_NAMES = [
    "decision_framer",
    "shopper_insights",
    "demand_forecasting",
    "margin_impact",
    "executive_recommendation",
]


def _by_role(events, role):
    return [e for e in events if e.role_name == role]


def _workflow_phases(events):
    return [e.phase for e in events if e.role_name == WORKFLOW_ROLE]


def test_default_stage_assignment(orchestrator):
    assert orchestrator.framer_role == "decision_framer"
    assert orchestrator.synthesis_role == "executive_recommendation"
    assert orchestrator.analysis_roles == ["shopper_insights", "demand_forecasting", "margin_impact"]


def test_happy_path_runs_every_stage(orchestrator, event_store, decision_request):
    aggregator = InsightAggregator("d1")

    events = list(orchestrator.run("d1", decision_request, aggregator=aggregator))

    assert _workflow_phases(events) == [
        AnalysisPhase.STARTING,
        AnalysisPhase.ANALYZING,
        AnalysisPhase.REPORTING,
        AnalysisPhase.COMPLETED,
    ]
    for role in ROLE_NAMES:
        completed = [e for e in _by_role(events, role) if e.phase == AnalysisPhase.COMPLETED]
        assert len(completed) == 1
    assert sorted(aggregator.role_names()) == sorted(ROLE_NAMES)
    assert event_store.is_complete("d1")
    assert event_store.get_snapshot("d1") == events


def test_empty_caller_aggregator_receives_insights(orchestrator, decision_request):
    aggregator = InsightAggregator("d1")
    assert len(aggregator) == 0

    list(orchestrator.run("d1", decision_request, aggregator=aggregator))

    assert len(aggregator) == 5
    assert aggregator.get("margin_impact").summary == "margin_impact done"


def test_completed_milestone_summarizes_run(orchestrator, decision_request):
    events = list(orchestrator.run("d1", decision_request))

    final = events[-1]
    assert final.role_name == WORKFLOW_ROLE
    assert final.phase == AnalysisPhase.COMPLETED
    assert final.data["total_roles"] == 5
    assert final.data["completed_roles"] == 5
    assert final.data["failed_roles"] == 0
    assert final.data["duration_ms"] >= 0


def test_sequence_numbers_are_contiguous_and_match_log_order(orchestrator, event_store, decision_request):
    events = list(orchestrator.run("d1", decision_request))

    seqs = [e.sequence_number for e in event_store.get_snapshot("d1")]
    assert seqs == list(range(1, len(events) + 1))


def test_parallel_roles_keep_their_own_phase_order(event_store, persona_catalog, decision_request):
    analysts = [ScriptedRole(f"analyst_{i}", workflow_order=10 + i, reports=15, delay=0.001) for i in range(6)]
    roles = [ScriptedRole("decision_framer", 1), *analysts, ScriptedRole("executive_recommendation", 99)]
    orchestrator = DecisionWorkflowOrchestrator(roles, event_store, persona_catalog, max_parallel=6)

    events = list(orchestrator.run("d1", decision_request))

    assert [e.sequence_number for e in events] == list(range(1, len(events) + 1))
    for analyst in analysts:
        role_events = _by_role(events, analyst.role_name)
        assert role_events[0].phase == AnalysisPhase.STARTING
        assert role_events[-1].phase == AnalysisPhase.COMPLETED
        assert [e.message for e in role_events[2:-1]] == [
            f"{analyst.role_name} report {i}" for i in range(15)
        ]


def test_parallel_roles_see_framer_insight_at_launch(orchestrator, scripted_roles, decision_request):
    list(orchestrator.run("d1", decision_request))

    for name in ("shopper_insights", "demand_forecasting", "margin_impact"):
        assert "decision_framer" in scripted_roles[name].seen_prior[0]
    synthesis_prior = scripted_roles["executive_recommendation"].seen_prior[0]
    assert sorted(synthesis_prior) == sorted(ROLE_NAMES[:-1])


def test_failing_parallel_role_is_contained(scripted_roles, event_store, persona_catalog, decision_request):
    scripted_roles["demand_forecasting"] = ScriptedRole("demand_forecasting", workflow_order=3, fail_at=3)
    orchestrator = DecisionWorkflowOrchestrator(scripted_roles.values(), event_store, persona_catalog)
    aggregator = InsightAggregator("d1")

    events = list(orchestrator.run("d1", decision_request, aggregator=aggregator))

    failed = _by_role(events, "demand_forecasting")
    assert failed[-1].phase == AnalysisPhase.ERROR
    assert failed[-1].message == "Analysis error: demand_forecasting exploded"
    assert sum(1 for e in failed if e.phase == AnalysisPhase.ERROR) == 1
    for name in ("shopper_insights", "margin_impact"):
        assert _by_role(events, name)[-1].phase == AnalysisPhase.COMPLETED

    synthesis_prior = scripted_roles["executive_recommendation"].seen_prior[0]
    assert sorted(synthesis_prior) == ["decision_framer", "margin_impact", "shopper_insights"]
    assert "demand_forecasting" not in aggregator
    assert len(aggregator) == 4
    assert events[-1].phase == AnalysisPhase.COMPLETED
    assert events[-1].data["failed_roles"] == 1
    assert event_store.is_complete("d1")


def test_role_failing_before_first_event_still_reports_error(scripted_roles, event_store, persona_catalog, decision_request):
    scripted_roles["margin_impact"] = ScriptedRole("margin_impact", workflow_order=5, fail_at=0)
    orchestrator = DecisionWorkflowOrchestrator(scripted_roles.values(), event_store, persona_catalog)

    events = list(orchestrator.run("d1", decision_request))

    margin = _by_role(events, "margin_impact")
    assert [e.phase for e in margin] == [AnalysisPhase.ERROR]


def test_failing_synthesis_still_completes_workflow(scripted_roles, event_store, persona_catalog, decision_request):
    scripted_roles["executive_recommendation"] = ScriptedRole("executive_recommendation", 8, fail_at=2)
    orchestrator = DecisionWorkflowOrchestrator(scripted_roles.values(), event_store, persona_catalog)
    aggregator = InsightAggregator("d1")

    events = list(orchestrator.run("d1", decision_request, aggregator=aggregator))

    assert _by_role(events, "executive_recommendation")[-1].phase == AnalysisPhase.ERROR
    assert events[-1].role_name == WORKFLOW_ROLE
    assert events[-1].phase == AnalysisPhase.COMPLETED
    assert len(aggregator) == 4
    assert event_store.is_complete("d1")
    assert event_store.error("d1") is None


def test_insight_recorded_only_after_completed_event_is_appended(orchestrator, event_store, decision_request):
    violations = []

    class CheckingAggregator(InsightAggregator):
        def record(self, insight):
            snapshot = event_store.get_snapshot(self.decision_id)
            if not any(
                e.role_name == insight.role_name and e.phase == AnalysisPhase.COMPLETED
                for e in snapshot
            ):
                violations.append(insight.role_name)
            super().record(insight)

    aggregator = CheckingAggregator("d1")
    list(orchestrator.run("d1", decision_request, aggregator=aggregator))

    assert len(aggregator) == 5
    assert violations == []


def test_missing_role_is_skipped(scripted_roles, event_store, persona_catalog, decision_request):
    orchestrator = DecisionWorkflowOrchestrator(
        scripted_roles.values(), event_store, persona_catalog,
        analysis_roles=["shopper_insights", "no_such_role"],
    )

    events = list(orchestrator.run("d1", decision_request))

    assert events[-1].data["total_roles"] == 3
    assert _by_role(events, "no_such_role") == []


def test_unknown_persona_raises_before_any_event(orchestrator, event_store, decision_request):
    request = decision_request.model_copy(update={"persona": "department_store"})

    with pytest.raises(KeyError):
        list(orchestrator.run("d1", request))
    assert event_store.get_snapshot("d1") == []


def test_cancellation_propagates_and_leaves_stream_open(scripted_roles, event_store, persona_catalog, decision_request):
    for role in scripted_roles.values():
        role.delay = 0.002
    orchestrator = DecisionWorkflowOrchestrator(scripted_roles.values(), event_store, persona_catalog)

    def cancelled():
        return len(event_store.get_snapshot("d1")) >= 8

    with pytest.raises(InterruptedError):
        list(orchestrator.run("d1", decision_request, cancellation_check=cancelled))

    assert not event_store.is_complete("d1")
    assert not any(
        e.role_name == "executive_recommendation" for e in event_store.get_snapshot("d1")
    )


def test_live_subscriber_sees_exactly_the_log(orchestrator, event_store, decision_request):
    received = []
    subscription = event_store.subscribe("d1")
    reader = threading.Thread(target=lambda: received.extend(subscription))
    reader.start()

    list(orchestrator.run("d1", decision_request))
    reader.join(timeout=5)

    assert received == event_store.get_snapshot("d1")


def test_sequence_counter_is_unique_across_threads():
    counter = SequenceCounter()
    seen = []
    lock = threading.Lock()

    def take():
        values = [counter.next() for _ in range(200)]
        with lock:
            seen.extend(values)

    threads = [threading.Thread(target=take) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(seen) == list(range(1, 1601))
    assert counter.next() == 1601
    assert counter.last == 1601


def test_sequence_counter_tracks_last_value():
    counter = SequenceCounter()

    assert counter.last == 0
    assert [counter.next() for _ in range(3)] == [1, 2, 3]
    assert counter.last == 3
