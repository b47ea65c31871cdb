from sqlalchemy import Boolean, Column, DateTime, Index, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.types import ObjectIdString, generate_object_id


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("org_id", "email", name="uq_users_org_email"),
        Index("ix_users_auth0_id", "auth0_id"),
        Index("ix_users_custom_id", "custom_id"),
    )

    id = Column(ObjectIdString(), primary_key=True, default=generate_object_id)
    org_id = Column(String, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    auth0_id = Column(String(255), nullable=True)
    custom_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)
    # Embedded list of resource-specific grants; replaced wholesale on every write.
    resource_access = Column(JSONB, nullable=False, default=list, server_default="[]")
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    role_links = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserRole.position",
    )
    roles = association_proxy(
        "role_links",
        "role",
        creator=lambda role: _link_for(role),
    )

    @property
    def display_name(self) -> str:
        return self.full_name


def _link_for(role):
    from app.models.user_role import UserRole

    return UserRole(role=role, org_id=role.org_id)
