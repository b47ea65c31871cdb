from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from app.schemas.access import ModulePermission, validate_module_permissions
from app.schemas.common import normalize_label_text, require_text


class RoleBase(BaseModel):
    name: str
    description: str | None = None
    is_active: bool = True
    permissions: list[ModulePermission] = []

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return require_text(v)

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return normalize_label_text(v)

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, v: list[ModulePermission]) -> list[ModulePermission]:
        return validate_module_permissions(v or [])


class RoleCreate(RoleBase):
    pass


class RoleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    permissions: list[ModulePermission] | None = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return require_text(v)

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return normalize_label_text(v)

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, v: list[ModulePermission] | None) -> list[ModulePermission] | None:
        return validate_module_permissions(v) if v is not None else None


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    name: str
    description: str | None = None
    is_active: bool
    permissions: list[ModulePermission]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleListResponse(BaseModel):
    items: list[RoleOut]
    total: int
