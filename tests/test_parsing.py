import pytest

from decision_studio.llm.backends import LocalChatBackend
from decision_studio.roles.parsing import (
    DEFAULT_FINDING,
    extract_confidence,
    parse_executive_insight,
    parse_insight,
    split_reportable,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("**Confidence: 82%**", 0.82),
        ("Overall confidence: 64% given limited data", 0.64),
        ("confidence level: 0.65", 0.65),
        ("We have high confidence in the forecast.", 0.90),
        ("We have very high confidence here.", 0.90),
        ("This carries moderate confidence.", 0.70),
        ("Low confidence due to sparse history.", 0.50),
        ("No score given at all.", 0.75),
        ("Confidence: 150%", 1.0),
    ],
)
def test_extract_confidence(text, expected):
    assert extract_confidence(text) == pytest.approx(expected)


def test_parse_insight_summary_and_bullets():
    text = LocalChatBackend().respond("You are the Decision Framer for a grocery system.")

    parsed = parse_insight("decision_framer", text)

    assert parsed.summary == "Decision Frame Analysis"
    assert parsed.key_findings == [
        "Scope covers impacted product categories, regions, and channels",
        "Success means revenue targets met with customer satisfaction maintained",
        "Key assumption is that baseline demand holds through the test window",
    ]
    assert parsed.confidence == pytest.approx(0.80)


def test_parse_insight_caps_findings_at_five():
    text = "Summary line\n" + "\n".join(f"* point {i}" for i in range(8))

    parsed = parse_insight("risk_compliance", text)

    assert parsed.key_findings == [f"point {i}" for i in range(5)]


def test_parse_insight_without_bullets_uses_default_finding():
    parsed = parse_insight("margin_impact", "\n\nJust one paragraph of prose.")

    assert parsed.summary == "Just one paragraph of prose."
    assert parsed.key_findings == [DEFAULT_FINDING]
    assert parsed.confidence == 0.75


def test_parse_executive_approve():
    text = LocalChatBackend().respond("You are the Executive Recommendation synthesizer.")

    parsed = parse_executive_insight(text)

    assert parsed.data == {"verdict": "APPROVE"}
    assert parsed.confidence == 0.85
    assert parsed.summary.startswith("Based on comprehensive multi-perspective analysis")
    assert len(parsed.key_findings) == 4


def test_parse_executive_decline_wins_over_modifications():
    parsed = parse_executive_insight("Verdict: DECLINE\nEven with modifications this fails.")

    assert parsed.data["verdict"] == "DECLINE"
    assert parsed.confidence == 0.80


def test_parse_executive_modifications():
    parsed = parse_executive_insight("## Verdict\nAPPROVE WITH MODIFICATIONS")

    assert parsed.data["verdict"] == "APPROVE WITH MODIFICATIONS"
    assert parsed.confidence == 0.75
    assert parsed.summary == "Recommendation: APPROVE WITH MODIFICATIONS"
    assert parsed.key_findings == ["Verdict: APPROVE WITH MODIFICATIONS"]


def test_split_reportable_waits_for_enough_text():
    report, remainder = split_reportable("Short sentence. ")

    assert report is None
    assert remainder == "Short sentence. "


def test_split_reportable_cuts_at_last_sentence_end():
    buffer = "## Heading\n\n**Core shoppers** respond well to the proposed change. Price-sensitive"

    report, remainder = split_reportable(buffer)

    assert report == "Heading\n\nCore shoppers respond well to the proposed change."
    assert remainder == " Price-sensitive"
