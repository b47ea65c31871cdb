from pydantic import BaseModel, model_validator

from app.schemas.access import ResourceAccessGrant


class AuthorizationCheckRequest(BaseModel):
    """Evaluate a module or resource check; ``target_user_id`` defaults to the caller."""

    target_user_id: str | None = None
    action: str
    module_name: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None

    @model_validator(mode="after")
    def require_target(self) -> "AuthorizationCheckRequest":
        if not self.module_name and not self.resource_type:
            raise ValueError("Provide module_name or resource_type")
        return self


class AuthorizationDecisionOut(BaseModel):
    allowed: bool
    source: str
    action: str
    permission: str
    module_name: str
    user_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    matched_grant: ResourceAccessGrant | None = None
    role_name: str | None = None


class ResourceScopeOut(BaseModel):
    resource_type: str
    full_access: bool
    resource_ids: list[str]
