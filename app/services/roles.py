from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.core.permissions import DEFAULT_ROLE_DEFINITIONS, role_permission_entries
from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()


async def seed_default_roles(db: AsyncSession, org_id: str) -> dict[str, Role]:
    """
    Ensure the default roles exist for the org, returning a name->Role mapping.
    """
    existing_stmt = select(Role).where(
        Role.org_id == org_id, Role.name.in_(list(DEFAULT_ROLE_DEFINITIONS))
    )
    existing_result = await db.execute(existing_stmt)
    existing = {role.name: role for role in existing_result.scalars().all()}

    seeded: dict[str, Role] = {}
    for name, definition in DEFAULT_ROLE_DEFINITIONS.items():
        role = existing.get(name)
        if role:
            role.permissions = role_permission_entries(definition)
            role.description = definition["description"]
        else:
            role = Role(
                org_id=org_id,
                name=name,
                description=definition["description"],
                is_active=True,
                permissions=role_permission_entries(definition),
            )
            db.add(role)
        seeded[name] = role
    await db.commit()
    logger.info("Default roles seeded", extra={"org_id": org_id, "roles": sorted(seeded)})
    return seeded


async def load_roles(db: AsyncSession, org_id: str, role_ids: Sequence[str]) -> list[Role]:
    """Fetch roles by id within the org, keeping the requested order.

    Raises ``LookupError`` naming the first id that does not exist.
    """
    wanted = [str(role_id).lower() for role_id in role_ids]
    if not wanted:
        return []
    stmt = select(Role).where(Role.org_id == org_id, Role.id.in_(wanted))
    found = {str(role.id): role for role in (await db.execute(stmt)).scalars().all()}
    ordered: list[Role] = []
    for role_id in wanted:
        role = found.get(role_id)
        if role is None:
            raise LookupError(role_id)
        if role not in ordered:
            ordered.append(role)
    return ordered


def assign_roles(user: User, roles: Sequence[Role], *, assigned_by: str | None = None) -> None:
    """Replace the user's ordered role list."""
    user.role_links = [
        UserRole(org_id=user.org_id, role=role, role_id=role.id, position=index)
        for index, role in enumerate(roles)
    ]
    audit_logger.info(
        "user.roles_assigned",
        extra={
            "actor": assigned_by,
            "target_user_id": str(user.id),
            "role_names": [role.name for role in roles],
        },
    )
