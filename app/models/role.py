from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.types import ObjectIdString, generate_object_id


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("org_id", "name", name="uq_roles_org_name"),
    )

    id = Column(ObjectIdString(), primary_key=True, default=generate_object_id)
    org_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)
    # [{"module_name": "sites", "can_view": true, ...}, ...]
    permissions = Column(JSONB, nullable=False, default=list, server_default="[]")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user_links = relationship("UserRole", back_populates="role", cascade="all, delete-orphan")
