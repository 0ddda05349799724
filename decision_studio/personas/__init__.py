"""Retail persona catalog."""

from decision_studio.personas.registry import PersonaCatalog, get_persona_catalog
from decision_studio.personas.schemas import PersonaContext, PersonaSummary

__all__ = [
    "PersonaCatalog",
    "PersonaContext",
    "PersonaSummary",
    "get_persona_catalog",
]
