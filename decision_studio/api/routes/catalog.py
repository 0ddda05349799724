"""Catalog API routes: service status, personas, and roles."""

from fastapi import APIRouter, HTTPException, Query

from decision_studio import __version__
from decision_studio.decisions.schemas import utc_now
from decision_studio.personas.registry import get_persona_catalog
from decision_studio.personas.schemas import PersonaSummary
from decision_studio.roles.registry import get_role_registry
from decision_studio.roles.schemas import RoleSummary

router = APIRouter(tags=["catalog"])


@router.get("/status")
async def status():
    """Health check with catalog counts."""
    return {
        "status": "healthy",
        "service": "decision-studio",
        "version": __version__,
        "timestamp": utc_now(),
        "personas": get_persona_catalog().count(),
        "roles": get_role_registry().count(),
    }


@router.get("/personas", response_model=list[PersonaSummary])
async def list_personas():
    return get_persona_catalog().list_summaries()


@router.get("/personas/{persona}/sample")
async def sample_decision(persona: str, index: int = Query(default=0)):
    """Get a sample decision text for a persona (index wraps)."""
    catalog = get_persona_catalog()
    if catalog.get(persona) is None:
        raise HTTPException(status_code=404, detail=f"Persona not found: {persona}")
    try:
        text = catalog.sample_decision(persona, index)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"persona": persona, "index": index, "decision_text": text}


@router.get("/roles", response_model=list[RoleSummary])
async def list_roles():
    """Role metadata ordered by workflow order."""
    return get_role_registry().list_summaries()
