"""Decision Studio API.

Evaluates retail business decisions with a team of intelligence roles:
- Submit a decision, get a decision id back immediately
- Stream every role's progress live over Server-Sent Events
- Browse personas, sample decisions, and role metadata
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from decision_studio import __version__
from decision_studio.api.routes import catalog, decisions
from decision_studio.personas.registry import get_persona_catalog
from decision_studio.roles.registry import get_role_registry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Pre-load catalogs
    logger.info("Loading persona definitions...")
    persona_catalog = get_persona_catalog()
    logger.info(f"Loaded {persona_catalog.count()} personas")

    logger.info("Loading role definitions...")
    role_registry = get_role_registry()
    logger.info(f"Loaded {role_registry.count()} roles")

    orchestrator = decisions.get_orchestrator()
    logger.info(
        f"Workflow ready: framer={orchestrator.framer_role}, "
        f"analysis={orchestrator.analysis_roles}, synthesis={orchestrator.synthesis_role}"
    )

    logger.info("Decision Studio API ready")
    yield
    # Shutdown
    logger.info("Shutting down Decision Studio API")


# Create FastAPI app
app = FastAPI(
    title="Decision Studio API",
    description="""
## Retail Decision Intelligence

Submit a business decision and watch specialized roles evaluate it:
framing, parallel analysis (shoppers, demand, inventory, margin,
merchandising, risk), and an executive recommendation.

### Key Endpoints

- `POST /api/decisions` - Submit a decision
- `GET /api/decisions/{id}/events` - Stream its events (SSE)
- `GET /api/personas` - List personas
- `GET /api/roles` - List roles
""",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with /api prefix
app.include_router(catalog.router, prefix="/api")
app.include_router(decisions.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Decision Studio API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "status": "/api/status",
            "personas": "/api/personas",
            "roles": "/api/roles",
            "decisions": "/api/decisions",
        },
    }


def main():
    """Run the API with uvicorn."""
    import os

    import uvicorn

    uvicorn.run(
        "decision_studio.api.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
