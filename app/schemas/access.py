from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.permissions import RESOURCE_TYPES, Module, PermissionFlag
from app.models.types import generate_object_id
from app.schemas.common import normalize_label_text, require_text


class PermissionFlags(BaseModel):
    model_config = ConfigDict(extra="ignore")

    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def allows(self, flag: PermissionFlag) -> bool:
        return bool(getattr(self, flag.value))

    @classmethod
    def view_only(cls) -> "PermissionFlags":
        return cls(can_view=True)


class ModulePermission(PermissionFlags):
    module_name: str


class ResourceAccessGrant(BaseModel):
    """A per-user override of permission flags on one resource instance."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=generate_object_id)
    resource_type: str
    resource_id: str
    resource_name: str | None = None
    permissions: PermissionFlags = Field(default_factory=PermissionFlags)
    granted_at: datetime | None = None
    granted_by: str | None = None

    def matches(self, resource_type: str, resource_id: str) -> bool:
        return self.resource_type == resource_type and self.resource_id == str(resource_id)


class ResourceAccessCreate(BaseModel):
    resource_type: str
    resource_id: str
    resource_name: str | None = None
    permissions: PermissionFlags | None = None

    @field_validator("resource_type")
    @classmethod
    def validate_resource_type(cls, v: str) -> str:
        value = require_text(v)
        if value not in RESOURCE_TYPES:
            raise ValueError(f"Invalid resource_type. Must be one of: {', '.join(RESOURCE_TYPES)}")
        return value

    @field_validator("resource_id")
    @classmethod
    def validate_resource_id(cls, v: str) -> str:
        return require_text(v)

    @field_validator("resource_name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return normalize_label_text(v)

    def to_grant(self, granted_by: str | None) -> ResourceAccessGrant:
        return ResourceAccessGrant(
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            resource_name=self.resource_name,
            permissions=self.permissions or PermissionFlags.view_only(),
            granted_at=datetime.now(timezone.utc),
            granted_by=granted_by or "system",
        )


class ResourceAccessUpdate(BaseModel):
    permissions: PermissionFlags


class ResourceAccessListResponse(BaseModel):
    user_id: str
    user_name: str
    count: int
    items: list[ResourceAccessGrant]


def validate_module_permissions(entries: list[ModulePermission]) -> list[ModulePermission]:
    seen: set[str] = set()
    for entry in entries:
        if entry.module_name not in Module.list_all():
            raise ValueError(f"Unknown module: {entry.module_name}")
        if entry.module_name in seen:
            raise ValueError(f"Duplicate permissions for module: {entry.module_name}")
        seen.add(entry.module_name)
    return entries
