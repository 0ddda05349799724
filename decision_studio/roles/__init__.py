"""Intelligence roles: YAML definitions, prompts, parsing, and execution."""

from decision_studio.roles.base import IntelligenceRole, RoleBase
from decision_studio.roles.registry import RoleRegistry, get_role_registry
from decision_studio.roles.schemas import RoleDefinition, RolePrompts, RoleStage, RoleSummary
from decision_studio.roles.templated import TemplatedRole, build_roles

__all__ = [
    "IntelligenceRole",
    "RoleBase",
    "RoleDefinition",
    "RolePrompts",
    "RoleRegistry",
    "RoleStage",
    "RoleSummary",
    "TemplatedRole",
    "build_roles",
    "get_role_registry",
]
