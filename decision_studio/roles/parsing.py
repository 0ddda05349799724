"""Parse streamed role analyses into insights.

Models answer in loose markdown: a heading or summary line, bullet
findings, and a "Confidence: NN%" line. These helpers pull structure out
of that text without requiring any particular format.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, Field

DEFAULT_CONFIDENCE = 0.75
DEFAULT_FINDING = "Analysis completed successfully."
MAX_FINDINGS = 5
MAX_EXECUTIVE_FINDINGS = 7
MIN_REPORT_LENGTH = 50

VERDICT_APPROVE = "APPROVE"
VERDICT_MODIFY = "APPROVE WITH MODIFICATIONS"
VERDICT_DECLINE = "DECLINE"

_VERDICT_CONFIDENCE = {
    VERDICT_APPROVE: 0.85,
    VERDICT_DECLINE: 0.80,
    VERDICT_MODIFY: 0.75,
}

_PERCENT_RE = re.compile(r"confidence[:\s*]+(\d{1,3})%", re.IGNORECASE)
_DECIMAL_RE = re.compile(r"confidence[:\s\w]*?(\d?\.\d+)", re.IGNORECASE)
_QUALITATIVE = [
    (re.compile(r"\b(very\s+)?high\s+confidence\b", re.IGNORECASE), 0.90),
    (re.compile(r"\bmoderate\s+confidence\b", re.IGNORECASE), 0.70),
    (re.compile(r"\blow\s+confidence\b", re.IGNORECASE), 0.50),
]

# "- item", "• item", "* item"; a leading "**bold**" line is not a bullet
_BULLET_RE = re.compile(r"^\s*(?:[-•]|\*(?!\*))\s*(.+?)\s*$")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")


class ParsedInsight(BaseModel):
    """Structured result of parsing one role's full response."""

    summary: str
    key_findings: list[str] = Field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE
    data: Optional[dict[str, Any]] = None


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def extract_confidence(text: str) -> float:
    """Extract a 0..1 confidence from free text.

    Tries "Confidence: NN%", then "confidence ... 0.NN", then qualitative
    phrases. Falls back to DEFAULT_CONFIDENCE.
    """
    match = _PERCENT_RE.search(text)
    if match:
        return _clamp(int(match.group(1)) / 100.0)

    match = _DECIMAL_RE.search(text)
    if match:
        return _clamp(float(match.group(1)))

    for pattern, value in _QUALITATIVE:
        if pattern.search(text):
            return value

    return DEFAULT_CONFIDENCE


def _non_empty_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _bullets(lines: list[str], limit: int) -> list[str]:
    findings = []
    for line in lines:
        match = _BULLET_RE.match(line)
        if match:
            findings.append(match.group(1))
            if len(findings) == limit:
                break
    return findings


def strip_markdown(text: str) -> str:
    return text.replace("**", "").replace("##", "").strip()


def parse_insight(role_name: str, text: str) -> ParsedInsight:
    """Parse a regular role's response.

    The first non-empty line (heading markers removed) is the summary and
    up to five bullet lines are the key findings.
    """
    lines = _non_empty_lines(text)
    summary = lines[0].lstrip("#").strip() if lines else ""
    findings = _bullets(lines, MAX_FINDINGS)
    return ParsedInsight(
        summary=summary or "Analysis complete.",
        key_findings=findings or [DEFAULT_FINDING],
        confidence=extract_confidence(text),
    )


def detect_verdict(text: str) -> str:
    upper = text.upper()
    if VERDICT_DECLINE in upper:
        return VERDICT_DECLINE
    if "MODIFICATIONS" in upper or "WITH CHANGES" in upper:
        return VERDICT_MODIFY
    return VERDICT_APPROVE


def parse_executive_insight(text: str) -> ParsedInsight:
    """Parse the synthesis role's recommendation.

    Confidence comes from the verdict, not from the text.
    """
    verdict = detect_verdict(text)
    lines = _non_empty_lines(text)
    findings = _bullets(lines, MAX_EXECUTIVE_FINDINGS)
    summary = next(
        (
            line for line in lines
            if len(line) > 50 and not line.startswith(("#", "-", "•"))
        ),
        f"Recommendation: {verdict}",
    )
    return ParsedInsight(
        summary=summary,
        key_findings=findings or [f"Verdict: {verdict}"],
        confidence=_VERDICT_CONFIDENCE[verdict],
        data={"verdict": verdict},
    )


def split_reportable(buffer: str, min_length: int = MIN_REPORT_LENGTH) -> tuple[Optional[str], str]:
    """Cut a sentence-complete chunk off a streaming buffer.

    Returns (report, remainder). report is None until the buffer holds a
    sentence ending past min_length characters; the returned text has
    markdown bold and heading markers removed.
    """
    ends = [m.end() for m in _SENTENCE_END_RE.finditer(buffer)]
    if not ends or ends[-1] <= min_length:
        return None, buffer

    cut = ends[-1]
    report = strip_markdown(buffer[:cut])
    remainder = buffer[cut:]
    return (report or None), remainder
