from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import context
from app.core.errors import AuthenticationRequired, PermissionDenied, ResourceIdMissing
from app.core.permissions import Module, action_for_method, module_for_path
from app.core.security import decode_session_token
from app.core.settings import settings
from app.core.tenant import normalize_org_id
from app.db.session import get_db
from app.models.user import User
from app.services import authz
from app.services.authz import AuthorizationDecision, DecisionSource
from app.services.identity import resolve_user

USER_ID_HEADER = "x-user-id"
USER_ID_FIELD = "user_id"


@dataclass(slots=True)
class TenantContext:
    org_id: str


@dataclass(slots=True)
class AuthorizedUser:
    user: User
    decision: AuthorizationDecision


def _resolve_subdomain(request: Request) -> str | None:
    host = request.headers.get("host", "")
    # strip port if present
    host = host.split(":")[0]
    if settings.allowed_tenant_hosts:
        if host not in settings.allowed_tenant_hosts:
            return None
    parts = host.split(".")
    # ignore localhost/invalid hosts
    if len(parts) >= 3:
        return parts[0]
    return None


async def get_tenant_context(
    request: Request,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    mode = settings.tenancy_mode
    if mode == "multi":
        candidate = tenant_id or _resolve_subdomain(request)
        if not candidate:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tenant resolution failed: provide X-Tenant-ID header or subdomain",
            )
        try:
            org_id = normalize_org_id(candidate)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        context.set_tenant_id(org_id)
        return TenantContext(org_id=org_id)

    default_org = settings.default_org_id
    context.set_tenant_id(default_org)
    return TenantContext(org_id=default_org)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _body_identifier(request: Request) -> str | None:
    if request.method in {"GET", "HEAD", "DELETE", "OPTIONS"}:
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict):
        value = body.get(USER_ID_FIELD)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def extract_user_identifier(request: Request) -> str | None:
    """Pick the caller's identifier: session token, header, JSON body, then query."""
    token = _bearer_token(request)
    if token is not None:
        try:
            claims = decode_session_token(token)
        except ValueError as exc:
            raise AuthenticationRequired(str(exc)) from exc
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationRequired("Session token has no subject")
        return str(subject)

    header_value = request.headers.get(USER_ID_HEADER, "").strip()
    if header_value:
        return header_value

    body_value = await _body_identifier(request)
    if body_value:
        return body_value

    query_value = (request.query_params.get(USER_ID_FIELD) or "").strip()
    return query_value or None


async def _load_caller(request: Request, db: AsyncSession, ctx: TenantContext) -> User:
    identifier = await extract_user_identifier(request)
    if not identifier:
        raise AuthenticationRequired()
    user = await resolve_user(db, identifier, org_id=ctx.org_id)
    context.set_user_id(str(user.id))
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant_context),
) -> User:
    """Authenticated, active caller; no permission check."""
    user = await _load_caller(request, db, ctx)
    authz.ensure_active(user)
    return user


def _denial(decision: AuthorizationDecision) -> PermissionDenied:
    details: dict = {
        "source": decision.source.value,
        "required_permission": f"{decision.action}:{decision.module_name}",
    }
    if decision.resource_id is not None:
        details["resource_id"] = decision.resource_id
    if decision.source is DecisionSource.RESOURCE_ACCESS and decision.matched_grant is not None:
        details["your_permissions"] = decision.matched_grant.permissions.model_dump()
        message = (
            f"Access denied. You don't have {decision.action} permission "
            f"for this {decision.resource_type}."
        )
    elif decision.resource_type is not None:
        message = f"Access denied. You don't have access to this {decision.resource_type}."
        details["hint"] = "Contact your administrator to request access to this resource."
    else:
        message = f"Access denied. You don't have {decision.action} permission for {decision.module_name}."
    return PermissionDenied(message, **details)


def _enforce(request: Request, user: User, decision: AuthorizationDecision) -> AuthorizedUser:
    request.state.authz_decision = decision
    if not decision.allowed:
        raise _denial(decision)
    request.state.permission_source = decision.source.value
    if decision.matched_grant is not None:
        request.state.resource_access = decision.matched_grant
    if decision.role_name is not None:
        request.state.role_name = decision.role_name
    return AuthorizedUser(user=user, decision=decision)


def require_resource_permission(
    resource_type: str,
    action: str,
    *,
    resource_id_param: str = "id",
    get_resource_id: Callable[[Request], str | None] | None = None,
):
    """Gate a route on one resource instance, e.g. ``/buildings/{id}``."""

    async def dependency(
        request: Request,
        ctx: TenantContext = Depends(get_tenant_context),
        db: AsyncSession = Depends(get_db_session),
    ) -> AuthorizedUser:
        identifier = await extract_user_identifier(request)
        if not identifier:
            raise AuthenticationRequired()
        if get_resource_id is not None:
            resource_id = get_resource_id(request)
        else:
            resource_id = request.path_params.get(resource_id_param)
        if not resource_id:
            raise ResourceIdMissing()
        user = await resolve_user(db, identifier, org_id=ctx.org_id)
        context.set_user_id(str(user.id))
        decision = authz.decide_resource(user, resource_type, action, str(resource_id))
        return _enforce(request, user, decision)

    return dependency


def require_module_permission(module_name: Module | str, action: str | None = None):
    """Gate a route on a module flag; without ``action`` the HTTP method decides."""
    target = module_name.value if isinstance(module_name, Module) else str(module_name)

    async def dependency(
        request: Request,
        ctx: TenantContext = Depends(get_tenant_context),
        db: AsyncSession = Depends(get_db_session),
    ) -> AuthorizedUser:
        user = await _load_caller(request, db, ctx)
        decision = authz.decide_module(user, target, action or action_for_method(request.method))
        return _enforce(request, user, decision)

    return dependency


def require_path_permission(action: str | None = None):
    """Gate a route on the module mapped from its URL; unmapped paths are refused."""

    async def dependency(
        request: Request,
        ctx: TenantContext = Depends(get_tenant_context),
        db: AsyncSession = Depends(get_db_session),
    ) -> AuthorizedUser:
        user = await _load_caller(request, db, ctx)
        module_name = module_for_path(request.url.path)
        if module_name is None:
            raise PermissionDenied(
                "Access denied. This route has no permission mapping.",
                path=request.url.path,
            )
        decision = authz.decide_module(user, module_name, action or action_for_method(request.method))
        return _enforce(request, user, decision)

    return dependency
