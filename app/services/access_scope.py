from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql import Select

from app.core.errors import ScopeViolation
from app.core.permissions import ROLE_HIERARCHY, PermissionFlag, module_for_resource
from app.services.authz import active_roles, admin_role, evaluate_role_modules, user_grants

if TYPE_CHECKING:
    from app.models.role import Role
    from app.models.user import User


@dataclass(slots=True)
class ResourceScope:
    resource_type: str
    full_access: bool
    resource_ids: list[str] = field(default_factory=list)

    def includes(self, resource_id: str) -> bool:
        return self.full_access or str(resource_id) in self.resource_ids


def accessible_resources(user: "User", resource_type: str) -> ResourceScope:
    """Which instances of ``resource_type`` the user may see.

    Module-level view on any active role means every instance; otherwise only
    the resources named by view-enabled grants.
    """
    if admin_role(user) is not None:
        return ResourceScope(resource_type=resource_type, full_access=True)
    module_name = module_for_resource(resource_type)
    if evaluate_role_modules(user, module_name, PermissionFlag.CAN_VIEW).granted:
        return ResourceScope(resource_type=resource_type, full_access=True)
    ids: list[str] = []
    for grant in user_grants(user):
        if grant.resource_type == resource_type and grant.permissions.can_view and grant.resource_id not in ids:
            ids.append(grant.resource_id)
    return ResourceScope(resource_type=resource_type, full_access=False, resource_ids=ids)


def apply_scope_filter(stmt: Select, scope: ResourceScope, id_column: InstrumentedAttribute) -> Select:
    """Restrict a listing query to the scope; an empty scope matches nothing."""
    if scope.full_access:
        return stmt
    return stmt.where(id_column.in_(scope.resource_ids))


def highest_role_name(user: "User") -> str:
    best = ROLE_HIERARCHY[0]
    for role in active_roles(user):
        if role.name in ROLE_HIERARCHY and ROLE_HIERARCHY.index(role.name) > ROLE_HIERARCHY.index(best):
            best = role.name
    return best


def can_assign_role(creator_role: str, target_role: str) -> bool:
    if creator_role not in ROLE_HIERARCHY or target_role not in ROLE_HIERARCHY:
        return False
    if creator_role == "Admin":
        return True
    return ROLE_HIERARCHY.index(target_role) < ROLE_HIERARCHY.index(creator_role)


def ensure_can_assign_roles(grantor: "User", roles: Iterable["Role"]) -> None:
    creator_role = highest_role_name(grantor)
    for role in roles:
        if not can_assign_role(creator_role, role.name):
            raise ScopeViolation(
                f"You cannot assign role '{role.name}'. "
                f"Your role '{creator_role}' does not have sufficient privileges.",
                role_name=role.name,
                your_role=creator_role,
            )


def ensure_can_grant(grantor: "User", resource_type: str, resource_id: str) -> None:
    scope = accessible_resources(grantor, resource_type)
    if not scope.includes(resource_id):
        raise ScopeViolation(
            f"You cannot assign access to {resource_type} with ID {resource_id}. "
            "You don't have access to this resource.",
            resource_type=resource_type,
            resource_id=resource_id,
        )
