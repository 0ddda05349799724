import threading

from decision_studio.decisions.schemas import AnalysisPhase, DecisionEvent, RoleInsight
from decision_studio.executor.insights import InsightAggregator


def _insight(role: str, summary: str = "summary") -> RoleInsight:
    return RoleInsight(role_name=role, summary=summary, key_findings=[summary], confidence=0.8)


def test_record_and_get():
    aggregator = InsightAggregator("d1")
    aggregator.record(_insight("margin_impact"))

    assert "margin_impact" in aggregator
    assert aggregator.get("margin_impact").summary == "summary"
    assert aggregator.get("risk_compliance") is None
    assert len(aggregator) == 1


def test_snapshot_is_independent_copy():
    aggregator = InsightAggregator()
    aggregator.record(_insight("shopper_insights"))
    snapshot = aggregator.snapshot()

    aggregator.record(_insight("demand_forecasting"))

    assert list(snapshot) == ["shopper_insights"]
    assert sorted(aggregator) == ["demand_forecasting", "shopper_insights"]


def test_later_insight_for_same_role_wins():
    aggregator = InsightAggregator()
    aggregator.record(_insight("margin_impact", "first"))
    aggregator.record(_insight("margin_impact", "second"))

    assert len(aggregator) == 1
    assert aggregator.get("margin_impact").summary == "second"


def test_concurrent_writers_for_distinct_roles():
    aggregator = InsightAggregator()
    threads = [
        threading.Thread(target=aggregator.record, args=(_insight(f"role_{i}"),))
        for i in range(50)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(aggregator) == 50


def test_insight_from_completed_event():
    event = DecisionEvent(
        decision_id="d1",
        persona="grocery",
        role_name="executive_recommendation",
        phase=AnalysisPhase.COMPLETED,
        message="Proceed with a phased rollout.",
        confidence=0.85,
        data={"key_findings": ["ROI positive"], "full_analysis": "...", "verdict": "APPROVE"},
    )

    insight = RoleInsight.from_event(event)

    assert insight.summary == "Proceed with a phased rollout."
    assert insight.key_findings == ["ROI positive"]
    assert insight.confidence == 0.85
    assert insight.data == {"verdict": "APPROVE"}


def test_insight_from_event_without_findings_uses_message():
    event = DecisionEvent(
        decision_id="d1",
        persona="grocery",
        role_name="risk_compliance",
        phase=AnalysisPhase.COMPLETED,
        message="Risk is moderate.",
    )

    insight = RoleInsight.from_event(event)

    assert insight.key_findings == ["Risk is moderate."]
    assert insight.confidence == 0.75
    assert insight.data is None
