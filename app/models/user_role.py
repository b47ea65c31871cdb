from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.types import ObjectIdString, generate_object_id


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    id = Column(ObjectIdString(), primary_key=True, default=generate_object_id)
    org_id = Column(String, nullable=False, index=True)
    user_id = Column(
        ObjectIdString(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id = Column(
        ObjectIdString(), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="role_links")
    role = relationship("Role", back_populates="user_links")
