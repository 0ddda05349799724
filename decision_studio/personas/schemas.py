"""Persona schemas - the retail context roles reason within."""

from pydantic import BaseModel, Field


class PersonaContext(BaseModel):
    """Persona-specific context handed to every role.

    The orchestrator treats this as opaque data; only roles and prompt
    templates look inside.
    """

    persona: str = Field(..., description="Persona key, e.g. 'grocery'")
    category: str = Field(default="", description="Grouping for display, e.g. 'food_and_dining'")
    display_name: str
    description: str = ""
    key_categories: list[str] = Field(default_factory=list)
    channels: list[str] = Field(default_factory=list)
    baseline_kpis: dict[str, float] = Field(
        default_factory=dict,
        description="KPI name -> typical industry value",
    )
    sample_decisions: list[str] = Field(default_factory=list)
    baseline_assumptions: dict[str, str] = Field(
        default_factory=dict,
        description="Assumption key -> industry-typical assumption text",
    )


class PersonaSummary(BaseModel):
    """Lightweight persona listing."""

    persona: str
    display_name: str
    description: str
    category: str
    key_categories: list[str]
    channels: list[str]
    sample_decisions: list[str]
