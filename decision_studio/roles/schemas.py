"""Role definition schemas.

A role is one specialized analysis perspective (shopper behavior, margin,
risk...). Each role is defined in a YAML file: its metadata, the stage of
the workflow it runs in, and Jinja2 prompt templates. One TemplatedRole
class executes every definition.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RoleStage(str, Enum):
    """Workflow stage a role runs in."""

    FRAMING = "framing"         # Runs first, alone; frames the decision
    ANALYSIS = "analysis"       # Runs in parallel with the other analysts
    SYNTHESIS = "synthesis"     # Runs last over every prior insight


class RolePrompts(BaseModel):
    """Jinja2 templates for a role's system and user prompts."""

    system: str = Field(..., description="System prompt template")
    user: str = Field(..., description="User prompt template")


class RoleDefinition(BaseModel):
    """A YAML-defined intelligence role."""

    name: str = Field(..., description="Unique role key, e.g. 'margin_impact'")
    display_name: str
    description: str = ""
    output_type: str = Field(default="Analysis", description="What the role produces, e.g. 'Risk Assessment'")
    workflow_order: int = Field(default=100, description="Display and scheduling order")
    stage: RoleStage = RoleStage.ANALYSIS
    focus_areas: list[str] = Field(default_factory=list)
    prompts: RolePrompts
    baseline_assumptions: list[str] = Field(
        default_factory=list,
        description="Persona baseline assumption keys injected when sample data is enabled",
    )
    max_tokens: int = 4000


class RoleSummary(BaseModel):
    """Role metadata for listings (no prompts)."""

    name: str
    display_name: str
    description: str
    output_type: str
    workflow_order: int
    stage: RoleStage
    focus_areas: list[str] = Field(default_factory=list)
    model: Optional[str] = None
