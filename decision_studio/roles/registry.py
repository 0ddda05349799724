"""Role registry - loads role definitions from YAML files."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from .schemas import RoleDefinition, RoleStage, RoleSummary

logger = logging.getLogger(__name__)


class RoleRegistry:
    """Registry of intelligence role definitions.

    Roles are loaded from roles/definitions/*.yaml (or ROLE_DEFINITIONS_DIR).
    Each YAML file holds one RoleDefinition.
    """

    def __init__(self, definitions_dir: Optional[Path] = None):
        if definitions_dir is None:
            definitions_dir = Path(
                os.environ.get("ROLE_DEFINITIONS_DIR", Path(__file__).parent / "definitions")
            )
        self.definitions_dir = definitions_dir
        self._roles: dict[str, RoleDefinition] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all role definitions from YAML files."""
        if self._loaded:
            return

        if not self.definitions_dir.exists():
            logger.warning(f"Role definitions directory not found: {self.definitions_dir}")
            self._loaded = True
            return

        for yaml_file in sorted(self.definitions_dir.glob("*.yaml")):
            try:
                with open(yaml_file, "r") as f:
                    data = yaml.safe_load(f)
                role = RoleDefinition.model_validate(data)
                if role.name in self._roles:
                    logger.warning(f"Duplicate role {role.name} in {yaml_file}, replacing")
                self._roles[role.name] = role
                logger.debug(f"Loaded role: {role.name} (order={role.workflow_order})")
            except Exception as e:
                logger.error(f"Failed to load role from {yaml_file}: {e}")

        self._loaded = True
        logger.info(f"Loaded {len(self._roles)} roles from {self.definitions_dir}")

    def get(self, name: str) -> Optional[RoleDefinition]:
        """Get role definition by name."""
        self.load()
        return self._roles.get(name)

    def list_all(self) -> list[RoleDefinition]:
        """All roles, ordered by workflow_order."""
        self.load()
        return sorted(self._roles.values(), key=lambda r: (r.workflow_order, r.name))

    def list_by_stage(self, stage: RoleStage) -> list[RoleDefinition]:
        return [r for r in self.list_all() if r.stage == stage]

    def list_summaries(self) -> list[RoleSummary]:
        return [
            RoleSummary(
                name=r.name,
                display_name=r.display_name,
                description=r.description,
                output_type=r.output_type,
                workflow_order=r.workflow_order,
                stage=r.stage,
                focus_areas=r.focus_areas,
            )
            for r in self.list_all()
        ]

    def count(self) -> int:
        self.load()
        return len(self._roles)

    def reload(self) -> None:
        """Force reload all definitions."""
        self._loaded = False
        self._roles.clear()
        self.load()


# Global registry instance
_registry: Optional[RoleRegistry] = None


def get_role_registry() -> RoleRegistry:
    """Get the global role registry instance."""
    global _registry
    if _registry is None:
        _registry = RoleRegistry()
        _registry.load()
    return _registry
