"""Per-decision insight aggregation.

Each role writes its own key once, when its completed event has been
appended. Readers (synthesis, sibling roles) take a point-in-time copy.
Single dict item assignment and dict copy are atomic under the GIL, so
no lock spans keys and neither side blocks the other.
"""

import logging
from typing import Iterator, Optional

from decision_studio.decisions.schemas import RoleInsight

logger = logging.getLogger(__name__)


class InsightAggregator:
    """Role name -> RoleInsight, safe for concurrent per-key writes."""

    def __init__(self, decision_id: str = ""):
        self.decision_id = decision_id
        self._insights: dict[str, RoleInsight] = {}

    def record(self, insight: RoleInsight) -> None:
        """Store a role's insight. A later insight for the same role wins."""
        if insight.role_name in self._insights:
            logger.warning(
                f"Overwriting insight for role {insight.role_name} "
                f"in decision {self.decision_id}"
            )
        self._insights[insight.role_name] = insight

    def get(self, role_name: str) -> Optional[RoleInsight]:
        return self._insights.get(role_name)

    def snapshot(self) -> dict[str, RoleInsight]:
        """Point-in-time copy of every insight recorded so far."""
        return self._insights.copy()

    def role_names(self) -> list[str]:
        return list(self._insights.copy())

    def __contains__(self, role_name: object) -> bool:
        return role_name in self._insights

    def __len__(self) -> int:
        return len(self._insights)

    def __iter__(self) -> Iterator[str]:
        return iter(self.role_names())
