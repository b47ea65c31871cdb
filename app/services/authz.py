"""Permission resolution for users, roles and resource-specific grants.

Two tiers are consulted. A resource-access grant naming the exact
``(resource_type, resource_id)`` pair is authoritative in both directions: its
flags grant or block the request and role permissions are never consulted.
Without a matching grant, the user's active roles are scanned for a
module-level flag. Anything not explicitly granted is denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AccountInactive, ResourceIdMissing
from app.core.logging import get_authz_logger
from app.core.permissions import PermissionFlag, module_for_resource, normalize_action
from app.core.settings import settings
from app.schemas.access import ModulePermission, ResourceAccessGrant
from app.services.identity import resolve_user

if TYPE_CHECKING:
    from app.models.role import Role
    from app.models.user import User

logger = get_authz_logger()


class DecisionSource(str, Enum):
    RESOURCE_ACCESS = "resource_access"
    ROLE = "role"
    ADMIN_ROLE = "admin_role"
    DENIED = "denied"


class ResourceAccessOutcome(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    NO_MATCH = "no_match"


@dataclass(slots=True, frozen=True)
class ResourceAccessResult:
    outcome: ResourceAccessOutcome
    grant: ResourceAccessGrant | None = None


@dataclass(slots=True, frozen=True)
class RoleModuleResult:
    granted: bool
    role: "Role | None" = None


@dataclass(slots=True)
class AuthorizationDecision:
    allowed: bool
    source: DecisionSource
    action: str
    flag: PermissionFlag
    module_name: str
    user_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    matched_grant: ResourceAccessGrant | None = None
    role_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "source": self.source.value,
            "action": self.action,
            "permission": self.flag.value,
            "module_name": self.module_name,
            "user_id": self.user_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "matched_grant": self.matched_grant.model_dump(mode="json") if self.matched_grant else None,
            "role_name": self.role_name,
        }


def user_grants(user: "User") -> list[ResourceAccessGrant]:
    grants: list[ResourceAccessGrant] = []
    for raw in user.resource_access or []:
        try:
            grants.append(ResourceAccessGrant.model_validate(raw))
        except ValidationError:
            logger.warning(
                "Skipping malformed resource access entry",
                extra={"target_user_id": str(user.id)},
            )
    return grants


def role_permissions(role: "Role") -> list[ModulePermission]:
    entries: list[ModulePermission] = []
    for raw in role.permissions or []:
        try:
            entries.append(ModulePermission.model_validate(raw))
        except ValidationError:
            continue
    return entries


def active_roles(user: "User") -> list["Role"]:
    return [role for role in (user.roles or []) if role is not None and role.is_active]


def ensure_active(user: "User") -> None:
    if not user.is_active:
        raise AccountInactive()


def _entry_matches(raw: Any, resource_type: str, resource_id: str) -> bool:
    if not isinstance(raw, dict):
        return False
    raw_id = raw.get("resource_id")
    return raw.get("resource_type") == resource_type and raw_id is not None and str(raw_id) == resource_id


def evaluate_resource_access(
    user: "User", resource_type: str, resource_id: str, flag: PermissionFlag
) -> ResourceAccessResult:
    for raw in user.resource_access or []:
        if not _entry_matches(raw, resource_type, resource_id):
            continue
        try:
            grant = ResourceAccessGrant.model_validate(raw)
        except ValidationError:
            # A matching entry still decides the request; unreadable flags grant nothing.
            logger.warning(
                "Malformed resource access entry matched; denying",
                extra={"target_user_id": str(user.id), "resource_type": resource_type, "resource_id": resource_id},
            )
            return ResourceAccessResult(ResourceAccessOutcome.DENIED)
        if grant.permissions.allows(flag):
            return ResourceAccessResult(ResourceAccessOutcome.GRANTED, grant)
        return ResourceAccessResult(ResourceAccessOutcome.DENIED, grant)
    return ResourceAccessResult(ResourceAccessOutcome.NO_MATCH)


def evaluate_role_modules(user: "User", module_name: str, flag: PermissionFlag) -> RoleModuleResult:
    for role in active_roles(user):
        for entry in role_permissions(role):
            if entry.module_name != module_name:
                continue
            if entry.allows(flag):
                return RoleModuleResult(granted=True, role=role)
            break
    return RoleModuleResult(granted=False)


def admin_role(user: "User") -> "Role | None":
    """Return the active admin role when the bypass is switched on."""
    if not settings.admin_bypass_enabled:
        return None
    names = set(settings.admin_role_names)
    for role in active_roles(user):
        if role.name in names:
            return role
    return None


def _module_decision(
    user: "User",
    module_name: str,
    action: str,
    flag: PermissionFlag,
    **context: Any,
) -> AuthorizationDecision:
    bypass = admin_role(user)
    if bypass is not None:
        return AuthorizationDecision(
            allowed=True,
            source=DecisionSource.ADMIN_ROLE,
            action=action,
            flag=flag,
            module_name=module_name,
            user_id=str(user.id),
            role_name=bypass.name,
            **context,
        )
    verdict = evaluate_role_modules(user, module_name, flag)
    return AuthorizationDecision(
        allowed=verdict.granted,
        source=DecisionSource.ROLE if verdict.granted else DecisionSource.DENIED,
        action=action,
        flag=flag,
        module_name=module_name,
        user_id=str(user.id),
        role_name=verdict.role.name if verdict.role is not None else None,
        **context,
    )


def decide_module(user: "User", module_name: str, action: str) -> AuthorizationDecision:
    ensure_active(user)
    flag = normalize_action(action)
    decision = _module_decision(user, module_name, action, flag)
    _log_decision(decision)
    return decision


def decide_resource(
    user: "User", resource_type: str, action: str, resource_id: str | None
) -> AuthorizationDecision:
    if resource_id is None or str(resource_id) == "":
        raise ResourceIdMissing()
    resource_id = str(resource_id)
    ensure_active(user)
    flag = normalize_action(action)
    module_name = module_for_resource(resource_type)

    specific = evaluate_resource_access(user, resource_type, resource_id, flag)
    if specific.outcome is not ResourceAccessOutcome.NO_MATCH:
        decision = AuthorizationDecision(
            allowed=specific.outcome is ResourceAccessOutcome.GRANTED,
            source=DecisionSource.RESOURCE_ACCESS,
            action=action,
            flag=flag,
            module_name=module_name,
            user_id=str(user.id),
            resource_type=resource_type,
            resource_id=resource_id,
            matched_grant=specific.grant,
        )
    else:
        decision = _module_decision(
            user,
            module_name,
            action,
            flag,
            resource_type=resource_type,
            resource_id=resource_id,
        )
    _log_decision(decision)
    return decision


async def authorize_module(
    db: AsyncSession,
    identifier: str,
    module_name: str,
    action: str,
    *,
    org_id: str | None = None,
) -> AuthorizationDecision:
    user = await resolve_user(db, identifier, org_id=org_id)
    return decide_module(user, module_name, action)


async def authorize_resource(
    db: AsyncSession,
    identifier: str,
    resource_type: str,
    action: str,
    resource_id: str | None,
    *,
    org_id: str | None = None,
) -> AuthorizationDecision:
    if resource_id is None or str(resource_id) == "":
        raise ResourceIdMissing()
    user = await resolve_user(db, identifier, org_id=org_id)
    return decide_resource(user, resource_type, action, resource_id)


def _log_decision(decision: AuthorizationDecision) -> None:
    logger.info(
        "Authorization %s",
        "granted" if decision.allowed else "denied",
        extra={
            "allowed": decision.allowed,
            "source": decision.source.value,
            "permission": decision.flag.value,
            "module_name": decision.module_name,
            "resource_type": decision.resource_type,
            "resource_id": decision.resource_id,
            "role_name": decision.role_name,
            "target_user_id": decision.user_id,
        },
    )
