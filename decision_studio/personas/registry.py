"""Persona catalog - loads retail persona contexts from YAML files.

Follows the same registry pattern as the role registry: lazy-load from
the definitions directory, lookup by key, global instance.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from .schemas import PersonaContext, PersonaSummary

logger = logging.getLogger(__name__)


class PersonaCatalog:
    """Catalog of retail personas.

    Each file in definitions/ is named {persona}.yaml and holds one
    PersonaContext.
    """

    def __init__(self, definitions_dir: Optional[Path] = None):
        self.definitions_dir = definitions_dir or Path(
            os.environ.get("PERSONA_DEFINITIONS_DIR", Path(__file__).parent / "definitions")
        )
        self._personas: dict[str, PersonaContext] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all persona definitions from YAML files."""
        if self._loaded:
            return

        if not self.definitions_dir.exists():
            logger.warning(f"Persona definitions directory not found: {self.definitions_dir}")
            self._loaded = True
            return

        for yaml_file in sorted(self.definitions_dir.glob("*.yaml")):
            try:
                with open(yaml_file, "r") as f:
                    data = yaml.safe_load(f)
                if data is None:
                    continue
                persona = PersonaContext.model_validate(data)
                self._personas[persona.persona] = persona
            except Exception as e:
                logger.error(f"Failed to load persona {yaml_file}: {e}")

        logger.info(f"Loaded {len(self._personas)} personas from {self.definitions_dir}")
        self._loaded = True

    def lookup(self, persona: str) -> PersonaContext:
        """Get the context for a persona.

        Raises:
            KeyError: If the persona is not in the catalog
        """
        self.load()
        try:
            return self._personas[persona]
        except KeyError:
            raise KeyError(f"Unknown persona: {persona}") from None

    def get(self, persona: str) -> Optional[PersonaContext]:
        self.load()
        return self._personas.get(persona)

    def list_all(self) -> list[PersonaContext]:
        self.load()
        return list(self._personas.values())

    def list_summaries(self) -> list[PersonaSummary]:
        self.load()
        return [
            PersonaSummary(
                persona=p.persona,
                display_name=p.display_name,
                description=p.description,
                category=p.category,
                key_categories=p.key_categories,
                channels=p.channels,
                sample_decisions=p.sample_decisions,
            )
            for p in self._personas.values()
        ]

    def sample_decision(self, persona: str, index: int = 0) -> str:
        """Get a sample decision for a persona.

        The index wraps around the available samples; negative indexes
        use their absolute value.

        Raises:
            KeyError: If the persona is unknown
            ValueError: If the persona has no sample decisions
        """
        context = self.lookup(persona)
        if not context.sample_decisions:
            raise ValueError(f"Persona {persona} has no sample decisions")
        return context.sample_decisions[abs(index) % len(context.sample_decisions)]

    def count(self) -> int:
        self.load()
        return len(self._personas)

    def reload(self) -> None:
        """Force reload all definitions."""
        self._loaded = False
        self._personas.clear()
        self.load()


# Global catalog instance
_catalog: Optional[PersonaCatalog] = None


def get_persona_catalog() -> PersonaCatalog:
    """Get the global persona catalog instance."""
    global _catalog
    if _catalog is None:
        _catalog = PersonaCatalog()
        _catalog.load()
    return _catalog
