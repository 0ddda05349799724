"""Role prompt rendering using Jinja2 templates.

Templates come from role definitions. The rendering context exposes the
persona, the request, and pre-formatted blocks for prior insights so
templates stay short:

    {{ persona.display_name }}, {{ request.decision_text }},
    {{ data_context }}, {{ assumptions }}, {{ additional_context }},
    {{ prior_insights }}, {{ framer_context }}, {{ demand_context }},
    {{ shopper_context }}, {{ all_roles_context }}
"""

import logging
from typing import Any, Mapping, Optional

from jinja2 import BaseLoader, Environment, StrictUndefined

from decision_studio.decisions.schemas import DecisionRequest, RoleInsight
from decision_studio.personas.schemas import PersonaContext

logger = logging.getLogger(__name__)

NO_PRIOR_ANALYSIS = "No prior analysis available."


def format_kpis(kpis: Mapping[str, float]) -> str:
    return "\n".join(f"  - {name}: {value:.2f}" for name, value in kpis.items())


def _findings_block(findings: list[str]) -> str:
    return "\n".join(f"- {f}" for f in findings)


# Configured once; templates are compiled per render from definition text
_env = Environment(
    loader=BaseLoader(),
    autoescape=False,  # We're generating markdown, not HTML
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)
_env.filters["kpis"] = format_kpis
_env.filters["bullets"] = _findings_block


class PromptContext:
    """Everything a role prompt template can reference."""

    def __init__(
        self,
        persona: PersonaContext,
        request: DecisionRequest,
        prior_insights: Optional[Mapping[str, RoleInsight]] = None,
        baseline_assumptions: Optional[list[str]] = None,
    ):
        self.persona = persona
        self.request = request
        self.prior_insights = dict(prior_insights or {})
        self.baseline_assumptions = baseline_assumptions or []

    @property
    def use_sample_data(self) -> bool:
        return self.request.use_sample_data

    def system_values(self) -> dict[str, Any]:
        return {
            "persona": self.persona,
            "request": self.request,
            "data_context": build_data_context(self.persona, self.use_sample_data),
            "assumptions": build_assumptions(self.persona, self.baseline_assumptions, self.use_sample_data),
        }

    def user_values(self) -> dict[str, Any]:
        insights = self.prior_insights
        return {
            "persona": self.persona,
            "request": self.request,
            "additional_context": build_additional_context(self.request),
            "prior_insights": format_prior_insights(insights),
            "framer_context": build_framer_context(insights),
            "demand_context": build_demand_context(insights),
            "shopper_context": build_shopper_context(insights),
            "all_roles_context": build_all_roles_context(insights),
        }


def build_data_context(persona: PersonaContext, use_sample_data: bool) -> str:
    if use_sample_data:
        return (
            f"You have access to baseline industry data for {persona.display_name}. "
            "Use these assumptions to enrich your analysis."
        )
    return (
        "You are working only with the information provided by the user. "
        "Clearly state when you are making general industry assumptions."
    )


def build_assumptions(persona: PersonaContext, keys: list[str], use_sample_data: bool) -> str:
    """Baseline assumption lines for the given persona keys (unknown keys skipped)."""
    if not use_sample_data:
        return ""
    lines = [
        f"Baseline Assumption: {persona.baseline_assumptions[key]}"
        for key in keys
        if key in persona.baseline_assumptions
    ]
    return "\n".join(lines)


def build_additional_context(request: DecisionRequest) -> str:
    details = []
    if request.region:
        details.append(f"Region: {request.region}")
    if request.category:
        details.append(f"Category: {request.category}")
    if request.timeframe:
        details.append(f"Timeframe: {request.timeframe}")
    if not details:
        return ""
    return "Additional Context:\n" + "\n".join(details)


def build_framer_context(insights: Mapping[str, RoleInsight]) -> str:
    framer = insights.get("decision_framer")
    if framer is None:
        return ""
    return f"Decision Brief:\n{framer.summary}\n\nKey Points:\n{_findings_block(framer.key_findings)}"


def build_demand_context(insights: Mapping[str, RoleInsight]) -> str:
    demand = insights.get("demand_forecasting")
    if demand is None:
        return ""
    return f"Demand Forecast:\n{demand.summary}\nKey Findings:\n{_findings_block(demand.key_findings)}"


def build_shopper_context(insights: Mapping[str, RoleInsight]) -> str:
    shopper = insights.get("shopper_insights")
    if shopper is None:
        return ""
    return f"Shopper Insights:\n{shopper.summary}"


def format_prior_insights(insights: Mapping[str, RoleInsight]) -> str:
    """Compact listing: summary plus the top three findings per role."""
    if not insights:
        return NO_PRIOR_ANALYSIS

    blocks = []
    for role, insight in insights.items():
        lines = [f"{role}:", f"  Summary: {insight.summary}", "  Key Findings:"]
        lines.extend(f"    - {finding}" for finding in insight.key_findings[:3])
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_all_roles_context(insights: Mapping[str, RoleInsight]) -> str:
    """Full listing for synthesis: every role's summary, confidence and findings."""
    if not insights:
        return NO_PRIOR_ANALYSIS

    lines = ["Analysis from Intelligence Roles:", "=" * 50]
    for role, insight in insights.items():
        lines.append("")
        lines.append(f"## {role.replace('_', ' ').upper()}")
        lines.append(f"Summary: {insight.summary}")
        lines.append(f"Confidence: {insight.confidence:.0%}")
        lines.append("Key Findings:")
        lines.extend(f"  • {finding}" for finding in insight.key_findings)
    return "\n".join(lines)


def render_template(template: str, values: Mapping[str, Any]) -> str:
    if not template:
        return ""
    return _env.from_string(template).render(**values).strip()


def render_system_prompt(template: str, context: PromptContext) -> str:
    return render_template(template, context.system_values())


def render_user_prompt(template: str, context: PromptContext) -> str:
    return render_template(template, context.user_values())
