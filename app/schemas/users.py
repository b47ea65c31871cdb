from datetime import datetime

from pydantic import BaseModel, field_validator


class UserSummary(BaseModel):
    id: str
    email: str
    full_name: str
    is_active: bool
    auth0_id: str | None = None
    custom_id: str | None = None
    role_names: list[str] = []
    deactivated_at: datetime | None = None
    deactivated_by: str | None = None

    @classmethod
    def from_user(cls, user) -> "UserSummary":
        return cls(
            id=str(user.id),
            email=user.email,
            full_name=user.full_name,
            is_active=bool(user.is_active),
            auth0_id=user.auth0_id,
            custom_id=user.custom_id,
            role_names=[role.name for role in user.roles if role is not None],
            deactivated_at=user.deactivated_at,
            deactivated_by=user.deactivated_by,
        )


class UserListResponse(BaseModel):
    items: list[UserSummary]
    total: int
    full_access: bool


class RoleAssignmentRequest(BaseModel):
    role_ids: list[str]

    @field_validator("role_ids")
    @classmethod
    def strip_ids(cls, v: list[str]) -> list[str]:
        return [value.strip() for value in v if value and value.strip()]
