from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import PermissionDenied
from app.core.limiter import limiter
from app.core.permissions import Module, PermissionFlag
from app.models.user import User
from app.schemas.authz import AuthorizationCheckRequest, AuthorizationDecisionOut, ResourceScopeOut
from app.services import authz
from app.services.access_scope import accessible_resources

router = APIRouter(prefix="/authz", tags=["authz"])


@router.post("/check", response_model=AuthorizationDecisionOut, summary="Evaluate an authorization check")
@limiter.limit("60/minute")
async def check_authorization(
    request: Request,
    payload: AuthorizationCheckRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    caller: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db_session),
) -> AuthorizationDecisionOut:
    target_id = payload.target_user_id or str(caller.id)
    if target_id != str(caller.id):
        # Inspecting someone else's access needs user-module visibility.
        oversight = authz.evaluate_role_modules(caller, Module.USERS.value, PermissionFlag.CAN_VIEW)
        if not oversight.granted and authz.admin_role(caller) is None:
            raise PermissionDenied(
                "Access denied. You don't have view permission for users.",
                required_permission="view:users",
            )

    if payload.resource_type:
        decision = await authz.authorize_resource(
            db,
            target_id,
            payload.resource_type,
            payload.action,
            payload.resource_id,
            org_id=ctx.org_id,
        )
    else:
        decision = await authz.authorize_module(
            db,
            target_id,
            payload.module_name,
            payload.action,
            org_id=ctx.org_id,
        )
    return AuthorizationDecisionOut(**decision.as_dict())


@router.get(
    "/scope/{resource_type}",
    response_model=ResourceScopeOut,
    summary="Resources of a type visible to the caller",
)
@limiter.limit("60/minute")
async def read_scope(
    request: Request,
    resource_type: str,
    caller: User = Depends(deps.get_current_user),
) -> ResourceScopeOut:
    scope = accessible_resources(caller, resource_type)
    return ResourceScopeOut(
        resource_type=scope.resource_type,
        full_access=scope.full_access,
        resource_ids=scope.resource_ids,
    )
