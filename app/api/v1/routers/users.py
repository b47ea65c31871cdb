from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api import deps
from app.core.logging import get_audit_logger
from app.core.permissions import Module
from app.models.types import is_object_id
from app.models.user import User
from app.models.user_role import UserRole
from app.schemas.access import (
    ResourceAccessCreate,
    ResourceAccessGrant,
    ResourceAccessListResponse,
    ResourceAccessUpdate,
)
from app.schemas.users import RoleAssignmentRequest, UserListResponse, UserSummary
from app.services import resource_access
from app.services.access_scope import (
    accessible_resources,
    apply_scope_filter,
    ensure_can_assign_roles,
    ensure_can_grant,
)
from app.services.authz import user_grants
from app.services.roles import assign_roles, load_roles

router = APIRouter(prefix="/users", tags=["users"])
audit_logger = get_audit_logger()


async def _load_target(db: AsyncSession, org_id: str, user_id: str) -> User:
    if not is_object_id(user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID format")
    stmt = (
        select(User)
        .options(selectinload(User.role_links).selectinload(UserRole.role))
        .where(User.id == user_id, User.org_id == org_id)
    )
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("", response_model=UserListResponse, summary="List users visible to the caller")
async def list_users(
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    caller: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db_session),
) -> UserListResponse:
    scope = accessible_resources(caller, "user")
    stmt = (
        select(User)
        .options(selectinload(User.role_links).selectinload(UserRole.role))
        .where(User.org_id == ctx.org_id)
        .order_by(User.full_name)
    )
    stmt = apply_scope_filter(stmt, scope, User.id)
    result = await db.execute(stmt)
    users = result.scalars().all()
    return UserListResponse(
        items=[UserSummary.from_user(user) for user in users],
        total=len(users),
        full_access=scope.full_access,
    )


@router.get(
    "/{user_id}/resource-access",
    response_model=ResourceAccessListResponse,
    summary="List a user's resource-access grants",
)
async def list_resource_access(
    user_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    _: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "view")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ResourceAccessListResponse:
    target = await _load_target(db, ctx.org_id, user_id)
    grants = user_grants(target)
    return ResourceAccessListResponse(
        user_id=str(target.id),
        user_name=target.display_name,
        count=len(grants),
        items=grants,
    )


@router.post(
    "/{user_id}/resource-access",
    response_model=ResourceAccessGrant,
    status_code=201,
    summary="Grant access to a single resource",
)
async def create_resource_access(
    user_id: str,
    payload: ResourceAccessCreate,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "create")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ResourceAccessGrant:
    target = await _load_target(db, ctx.org_id, user_id)
    ensure_can_grant(auth.user, payload.resource_type, payload.resource_id)
    grant = resource_access.grant_resource_access(target, payload, granted_by=str(auth.user.id))
    await db.commit()
    return grant


@router.patch(
    "/{user_id}/resource-access/{grant_id}",
    response_model=ResourceAccessGrant,
    summary="Change the flags on a resource-access grant",
)
async def update_resource_access(
    user_id: str,
    grant_id: str,
    payload: ResourceAccessUpdate,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "edit")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ResourceAccessGrant:
    target = await _load_target(db, ctx.org_id, user_id)
    existing = resource_access.find_grant(target, grant_id)
    ensure_can_grant(auth.user, existing.resource_type, existing.resource_id)
    grant = resource_access.update_resource_access(
        target, grant_id, payload.permissions, updated_by=str(auth.user.id)
    )
    await db.commit()
    return grant


@router.delete(
    "/{user_id}/resource-access/{grant_id}",
    status_code=204,
    summary="Revoke a resource-access grant",
)
async def delete_resource_access(
    user_id: str,
    grant_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "delete")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> Response:
    target = await _load_target(db, ctx.org_id, user_id)
    resource_access.revoke_resource_access(target, grant_id, revoked_by=str(auth.user.id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{user_id}/roles", response_model=UserSummary, summary="Replace a user's ordered roles")
async def replace_roles(
    user_id: str,
    payload: RoleAssignmentRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "edit")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> UserSummary:
    target = await _load_target(db, ctx.org_id, user_id)
    try:
        roles = await load_roles(db, ctx.org_id, payload.role_ids)
    except LookupError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role with ID {exc.args[0]} not found",
        ) from exc
    ensure_can_assign_roles(auth.user, roles)
    assign_roles(target, roles, assigned_by=str(auth.user.id))
    await db.commit()
    return UserSummary.from_user(target)


@router.post("/{user_id}/deactivate", response_model=UserSummary, summary="Deactivate a user")
async def deactivate_user(
    user_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "edit")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> UserSummary:
    target = await _load_target(db, ctx.org_id, user_id)
    if str(target.id) == str(auth.user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate yourself")
    target.is_active = False
    target.deactivated_at = datetime.now(timezone.utc)
    target.deactivated_by = str(auth.user.id)
    await db.commit()
    audit_logger.info(
        "user.deactivated",
        extra={"actor": str(auth.user.id), "target_user_id": str(target.id)},
    )
    return UserSummary.from_user(target)


@router.post("/{user_id}/activate", response_model=UserSummary, summary="Reactivate a user")
async def activate_user(
    user_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    auth: deps.AuthorizedUser = Depends(deps.require_module_permission(Module.USERS, "edit")),
    db: AsyncSession = Depends(deps.get_db_session),
) -> UserSummary:
    target = await _load_target(db, ctx.org_id, user_id)
    target.is_active = True
    target.deactivated_at = None
    target.deactivated_by = None
    await db.commit()
    audit_logger.info(
        "user.activated",
        extra={"actor": str(auth.user.id), "target_user_id": str(target.id)},
    )
    return UserSummary.from_user(target)
