from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import DuplicateGrant, GrantNotFound
from app.core.logging import get_audit_logger
from app.schemas.access import PermissionFlags, ResourceAccessCreate, ResourceAccessGrant
from app.services.authz import user_grants

if TYPE_CHECKING:
    from app.models.user import User

audit_logger = get_audit_logger()


def _store(user: "User", grants: list[ResourceAccessGrant]) -> None:
    # Assign a fresh list so the JSON column is flagged dirty.
    user.resource_access = [grant.model_dump(mode="json") for grant in grants]


def _audit(action: str, user: "User", grant: ResourceAccessGrant, actor: str | None) -> None:
    audit_logger.info(
        action,
        extra={
            "actor": actor,
            "target_user_id": str(user.id),
            "grant_id": grant.id,
            "resource_type": grant.resource_type,
            "resource_id": grant.resource_id,
            "permissions": grant.permissions.model_dump(),
        },
    )


def find_grant(user: "User", grant_id: str) -> ResourceAccessGrant:
    for grant in user_grants(user):
        if grant.id == grant_id:
            return grant
    raise GrantNotFound(grant_id=grant_id)


def grant_resource_access(
    user: "User", payload: ResourceAccessCreate, *, granted_by: str | None = None
) -> ResourceAccessGrant:
    grants = user_grants(user)
    if any(existing.matches(payload.resource_type, payload.resource_id) for existing in grants):
        raise DuplicateGrant(resource_type=payload.resource_type, resource_id=payload.resource_id)
    grant = payload.to_grant(granted_by)
    _store(user, [*grants, grant])
    _audit("resource_access.granted", user, grant, granted_by)
    return grant


def update_resource_access(
    user: "User", grant_id: str, permissions: PermissionFlags, *, updated_by: str | None = None
) -> ResourceAccessGrant:
    grants = user_grants(user)
    updated: ResourceAccessGrant | None = None
    replaced: list[ResourceAccessGrant] = []
    for grant in grants:
        if updated is None and grant.id == grant_id:
            updated = grant.model_copy(update={"permissions": permissions})
            replaced.append(updated)
        else:
            replaced.append(grant)
    if updated is None:
        raise GrantNotFound(grant_id=grant_id)
    _store(user, replaced)
    _audit("resource_access.updated", user, updated, updated_by)
    return updated


def revoke_resource_access(
    user: "User", grant_id: str, *, revoked_by: str | None = None
) -> ResourceAccessGrant:
    removed = find_grant(user, grant_id)
    _store(user, [grant for grant in user_grants(user) if grant.id != grant_id])
    _audit("resource_access.revoked", user, removed, revoked_by)
    return removed
