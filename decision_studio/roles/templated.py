"""YAML-driven intelligence role.

One class executes every role definition: render the definition's
prompts, stream the model's answer, report sentence-complete fragments
as they arrive, and finish with a parsed insight.
"""

import logging
import time
from typing import Callable, Iterator, Mapping, Optional

from decision_studio.decisions.schemas import (
    AnalysisPhase,
    DecisionEvent,
    DecisionRequest,
    RoleInsight,
)
from decision_studio.llm.backends import ChatBackend
from decision_studio.llm.factory import get_backend
from decision_studio.personas.schemas import PersonaContext

from .base import RoleBase
from .parsing import parse_executive_insight, parse_insight, split_reportable
from .prompts import PromptContext, render_system_prompt, render_user_prompt
from .registry import RoleRegistry, get_role_registry
from .schemas import RoleDefinition, RoleStage

logger = logging.getLogger(__name__)


class TemplatedRole(RoleBase):
    """An intelligence role driven entirely by its RoleDefinition."""

    def __init__(self, definition: RoleDefinition, backend: ChatBackend):
        super().__init__(
            role_name=definition.name,
            display_name=definition.display_name,
            description=definition.description,
            focus_areas=definition.focus_areas,
            output_type=definition.output_type,
            workflow_order=definition.workflow_order,
        )
        self.definition = definition
        self.backend = backend

    @property
    def stage(self) -> RoleStage:
        return self.definition.stage

    def describe(self) -> dict:
        info = super().describe()
        info["stage"] = self.stage.value
        info["model"] = self.backend.model_id
        return info

    def build_prompts(
        self,
        request: DecisionRequest,
        persona_context: PersonaContext,
        prior_insights: Mapping[str, RoleInsight],
    ) -> tuple[str, str]:
        """Render (system_prompt, user_prompt) for one decision."""
        context = PromptContext(
            persona=persona_context,
            request=request,
            prior_insights=prior_insights,
            baseline_assumptions=self.definition.baseline_assumptions,
        )
        return (
            render_system_prompt(self.definition.prompts.system, context),
            render_user_prompt(self.definition.prompts.user, context),
        )

    def analyze(
        self,
        decision_id: str,
        request: DecisionRequest,
        persona_context: PersonaContext,
        prior_insights: Mapping[str, RoleInsight],
        cancellation_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[DecisionEvent]:
        """Stream this role's analysis of a decision.

        Yields starting, analyzing, zero or more reporting events, then one
        completed event carrying key_findings and full_analysis in data.

        Raises:
            InterruptedError: If cancellation_check returns True
        """
        persona = request.persona
        seq = 0
        start_time = time.time()

        logger.info(
            f"[{self.role_name}] Starting analysis for decision {decision_id} "
            f"(persona={persona}, prior_insights={len(prior_insights)})"
        )

        yield self.create_event(
            decision_id, persona, AnalysisPhase.STARTING,
            f"{self.display_name} is beginning analysis...", seq,
        )
        seq += 1
        yield self.create_event(
            decision_id, persona, AnalysisPhase.ANALYZING,
            f"Evaluating decision parameters for {persona_context.display_name} context...", seq,
        )
        seq += 1

        system_prompt, user_prompt = self.build_prompts(request, persona_context, prior_insights)

        chunks: list[str] = []
        buffer = ""
        for chunk in self.backend.stream(
            system_prompt,
            user_prompt,
            max_tokens=self.definition.max_tokens,
            cancellation_check=cancellation_check,
        ):
            if cancellation_check and cancellation_check():
                raise InterruptedError(f"Role {self.role_name} cancelled")
            chunks.append(chunk)
            buffer += chunk
            report, buffer = split_reportable(buffer)
            if report:
                yield self.create_event(decision_id, persona, AnalysisPhase.REPORTING, report, seq)
                seq += 1

        full_analysis = "".join(chunks)
        if self.stage == RoleStage.SYNTHESIS:
            parsed = parse_executive_insight(full_analysis)
        else:
            parsed = parse_insight(self.role_name, full_analysis)

        data = {"key_findings": parsed.key_findings, "full_analysis": full_analysis}
        if parsed.data:
            data.update(parsed.data)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[{self.role_name}] Completed analysis for decision {decision_id} in {elapsed_ms}ms "
            f"(confidence={parsed.confidence:.0%}, {len(full_analysis):,} chars)"
        )

        yield self.create_event(
            decision_id, persona, AnalysisPhase.COMPLETED,
            parsed.summary, seq, confidence=parsed.confidence, data=data,
        )


def build_roles(
    registry: Optional[RoleRegistry] = None,
    backend: Optional[ChatBackend] = None,
) -> list[TemplatedRole]:
    """Instantiate every registered role definition, in workflow order."""
    registry = registry or get_role_registry()
    backend = backend or get_backend()
    roles = [TemplatedRole(definition, backend) for definition in registry.list_all()]
    logger.info(
        f"Built {len(roles)} roles on {backend.model_id}: "
        + ", ".join(r.role_name for r in roles)
    )
    return roles
