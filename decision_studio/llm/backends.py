"""Chat backends that stream role analysis text.

Provides a unified streaming interface over:
- Anthropic Claude (when ANTHROPIC_API_KEY is configured)
- A local rule-based backend for development and demos without a key

Backends yield text deltas. Turning those deltas into decision events is
the role's job (see roles.templated).
"""

import logging
import time
from typing import Callable, Iterator, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000
LOCAL_MODEL_ID = "local-retail-model"


@runtime_checkable
class ChatBackend(Protocol):
    """Protocol for streaming chat backends."""

    @property
    def model_id(self) -> str: ...

    def stream(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[str]: ...


class AnthropicChatBackend:
    """Anthropic Claude backend using the Messages streaming API."""

    def __init__(self, model_id: str = "claude-sonnet-4-6", api_key: Optional[str] = None):
        self._model_id = model_id
        self._api_key = api_key

    @property
    def model_id(self) -> str:
        return self._model_id

    def stream(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[str]:
        """Stream text deltas from Claude.

        Raises:
            InterruptedError: If cancellation_check returns True mid-stream
        """
        import httpx
        from anthropic import Anthropic

        client = Anthropic(
            api_key=self._api_key,
            timeout=httpx.Timeout(
                connect=60.0,
                read=300.0,  # 5 min max silence on socket
                write=60.0,
                pool=60.0,
            ),
        )
        start_time = time.time()
        chars = 0

        with client.messages.stream(
            model=self._model_id,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        ) as stream:
            for text in stream.text_stream:
                if cancellation_check and cancellation_check():
                    raise InterruptedError(f"Cancelled during {self._model_id} streaming")
                chars += len(text)
                yield text

        logger.info(
            f"Anthropic stream completed: model={self._model_id}, "
            f"{chars:,} chars, {int((time.time() - start_time) * 1000)}ms"
        )


# Canned analyses keyed by a phrase in the first line of the role's
# system prompt ("You are the Margin Impact analyst ..."). First match wins.
_LOCAL_RESPONSES: list[tuple[str, str]] = [
    ("decision framer", """## Decision Frame Analysis

**Core Business Question:** The decision presents a strategic opportunity requiring structured analysis.

**Proposed Action:** Implement a phased approach to evaluate market demand and operational readiness.

- Scope covers impacted product categories, regions, and channels
- Success means revenue targets met with customer satisfaction maintained
- Key assumption is that baseline demand holds through the test window

**Confidence: 80%**
"""),
    ("shopper insight", """## Shopper Insights Analysis

Core shoppers show strong alignment with the proposed change. Price-sensitive segments may need targeted messaging.

- Core demographic shows 72% alignment with proposed changes
- Shopping frequency correlates with promotional sensitivity
- Cross-category purchasing indicates bundle opportunities

**Confidence: 78%**
"""),
    ("demand forecast", """## Demand Forecasting Analysis

Demand is projected to lift meaningfully in the targeted categories before stabilizing above baseline.

- Short-term: 15-20% demand lift in targeted categories
- Medium-term: stabilization around 12% above baseline
- Competitive response could shift baseline assumptions

**Confidence: 74%**
"""),
    ("inventory", """## Inventory Readiness Assessment

Stock levels are adequate for the projected 30-day demand with modest pre-positioning.

- Safety stock thresholds within acceptable ranges
- Vendor capacity confirmed for volume increase scenarios
- Pre-position inventory 2 weeks before launch

**Confidence: 82%**
"""),
    ("margin", """## Margin Impact Analysis

The initiative is margin-accretive under base case assumptions once promotional costs are absorbed.

- Gross margin impact: +2.3% to +4.1% range
- Implementation costs recoverable within 6 months
- Projected payback period: 8-12 months

**Confidence: 71%**
"""),
    ("digital merchandising", """## Digital Merchandising Recommendations

Digital channels can amplify the initiative with modest placement and content changes.

- Website prominence adjustments recommended
- Cross-sell and upsell positioning in the app
- Segment-specific messaging templates for email

**Confidence: 76%**
"""),
    ("executive", """## Executive Recommendation

Based on comprehensive multi-perspective analysis, the initiative should proceed as a phased implementation.

**Verdict: APPROVE**

- Strong customer alignment supports the initiative
- Financial projections indicate positive ROI
- Operational readiness confirmed
- Risk profile acceptable with proper controls

**Confidence: 84%**
"""),
    ("risk", """## Risk & Compliance Assessment

Overall risk is moderate and manageable with standard monitoring controls in place.

- Operational risk: medium, manageable with controls
- Pricing regulations: compliant
- Consumer protection: review recommended

**Confidence: 79%**
"""),
]

_GENERIC_RESPONSE = """## Analysis Complete

Based on the evaluation of available data and context, the decision appears viable with moderate risk.

- Available evidence supports proceeding with a pilot
- Key uncertainties should be validated early

**Confidence: 70%**
"""


class LocalChatBackend:
    """Rule-based backend for running without an LLM.

    Picks a canned analysis by matching the role's system prompt and
    streams it in small word chunks.
    """

    def __init__(self, chunk_words: int = 5, chunk_delay: float = 0.03):
        self.chunk_words = chunk_words
        self.chunk_delay = chunk_delay

    @property
    def model_id(self) -> str:
        return LOCAL_MODEL_ID

    def respond(self, system_prompt: str) -> str:
        """Canned analysis for the role introduced on the prompt's first line."""
        lines = system_prompt.strip().splitlines()
        lowered = lines[0].lower() if lines else ""
        for phrase, response in _LOCAL_RESPONSES:
            if phrase in lowered:
                return response
        return _GENERIC_RESPONSE

    def stream(
        self,
        system_prompt: str,
        user_message: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[str]:
        # split(" ") keeps newlines inside the words so markdown survives
        words = self.respond(system_prompt).split(" ")
        for i in range(0, len(words), self.chunk_words):
            if cancellation_check and cancellation_check():
                raise InterruptedError("Cancelled during local streaming")
            if self.chunk_delay:
                time.sleep(self.chunk_delay)
            chunk = " ".join(words[i:i + self.chunk_words])
            yield chunk if i + self.chunk_words >= len(words) else chunk + " "
