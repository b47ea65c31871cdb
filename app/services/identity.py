from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.exc import DataError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from app.core.errors import UserNotFound
from app.models.types import is_object_id
from app.models.user import User
from app.models.user_role import UserRole

logger = logging.getLogger(__name__)


def _user_query(org_id: str | None) -> Select:
    stmt = select(User).options(selectinload(User.role_links).selectinload(UserRole.role))
    if org_id is not None:
        stmt = stmt.where(User.org_id == org_id)
    return stmt


async def _first(db: AsyncSession, stmt: Select) -> User | None:
    result = await db.execute(stmt.limit(1))
    return result.scalars().first()


async def _by_primary_key(db: AsyncSession, identifier: str, org_id: str | None) -> User | None:
    if not is_object_id(identifier):
        return None
    try:
        return await _first(db, _user_query(org_id).where(User.id == identifier.lower()))
    except DataError:
        # A key the store refuses to parse is a miss; the other strategies still run.
        logger.debug("Primary key lookup rejected", extra={"identifier": identifier})
        await db.rollback()
        return None


async def _by_auth0_id(db: AsyncSession, identifier: str, org_id: str | None) -> User | None:
    return await _first(db, _user_query(org_id).where(User.auth0_id == identifier))


async def _by_custom_id(db: AsyncSession, identifier: str, org_id: str | None) -> User | None:
    return await _first(db, _user_query(org_id).where(User.custom_id == identifier))


Strategy = Callable[[AsyncSession, str, "str | None"], Awaitable["User | None"]]

RESOLUTION_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("primary_key", _by_primary_key),
    ("auth0_id", _by_auth0_id),
    ("custom_id", _by_custom_id),
)


async def resolve_user(db: AsyncSession, identifier: str | None, *, org_id: str | None = None) -> User:
    """Find the single user an opaque identifier refers to, roles loaded.

    Strategies run in order and stop at the first hit. ``org_id`` restricts
    every lookup to one tenant.
    """
    candidate = (identifier or "").strip()
    if not candidate:
        raise UserNotFound()
    for name, strategy in RESOLUTION_STRATEGIES:
        user = await strategy(db, candidate, org_id)
        if user is not None:
            logger.debug("Resolved user", extra={"strategy": name, "target_user_id": str(user.id)})
            return user
    raise UserNotFound()
