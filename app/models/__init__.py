from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole

__all__ = [
    "User",
    "Role",
    "UserRole",
]
