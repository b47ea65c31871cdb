import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.role import Role
from app.models.types import is_object_id
from app.schemas.roles import RoleCreate, RoleListResponse, RoleOut, RoleUpdate

router = APIRouter(prefix="/roles", tags=["roles"])
logger = logging.getLogger(__name__)


async def _get_role(db: AsyncSession, org_id: str, role_id: str) -> Role:
    if not is_object_id(role_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role ID format")
    stmt = select(Role).where(Role.id == role_id, Role.org_id == org_id)
    result = await db.execute(stmt)
    role = result.scalar_one_or_none()
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


@router.get("", response_model=RoleListResponse, summary="List roles for current org")
async def list_roles(
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    _: deps.AuthorizedUser = Depends(deps.require_path_permission()),
    db: AsyncSession = Depends(deps.get_db_session),
) -> RoleListResponse:
    stmt = select(Role).where(Role.org_id == ctx.org_id).order_by(Role.name)
    result = await db.execute(stmt)
    roles = result.scalars().all()
    return RoleListResponse(items=roles, total=len(roles))


@router.get("/{role_id}", response_model=RoleOut, summary="Get a role")
async def get_role(
    role_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    _: deps.AuthorizedUser = Depends(deps.require_path_permission()),
    db: AsyncSession = Depends(deps.get_db_session),
) -> RoleOut:
    return await _get_role(db, ctx.org_id, role_id)


@router.post("", response_model=RoleOut, status_code=201, summary="Create a role")
async def create_role(
    payload: RoleCreate,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    _: deps.AuthorizedUser = Depends(deps.require_path_permission()),
    db: AsyncSession = Depends(deps.get_db_session),
) -> RoleOut:
    role = Role(
        org_id=ctx.org_id,
        name=payload.name,
        description=payload.description,
        is_active=payload.is_active,
        permissions=[entry.model_dump() for entry in payload.permissions],
    )
    db.add(role)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role name already exists") from exc
    await db.refresh(role)
    logger.info(
        "Role created",
        extra={"org_id": ctx.org_id, "role_id": str(role.id), "name": role.name},
    )
    return role


@router.patch("/{role_id}", response_model=RoleOut, summary="Update a role")
async def update_role(
    role_id: str,
    payload: RoleUpdate,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    _: deps.AuthorizedUser = Depends(deps.require_path_permission()),
    db: AsyncSession = Depends(deps.get_db_session),
) -> RoleOut:
    role = await _get_role(db, ctx.org_id, role_id)

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("permissions") is not None:
        # Replaced as a whole list; module entries are never merged.
        role.permissions = [entry.model_dump() for entry in payload.permissions]
    if updates.get("name"):
        role.name = updates["name"]
    if "description" in updates:
        role.description = updates["description"]
    if updates.get("is_active") is not None:
        role.is_active = updates["is_active"]

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role name already exists") from exc
    await db.refresh(role)
    logger.info(
        "Role updated",
        extra={"org_id": ctx.org_id, "role_id": str(role.id), "name": role.name, "fields": sorted(updates)},
    )
    return role
