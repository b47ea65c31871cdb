from fastapi import APIRouter

from app.api.v1.routers import authz, health, roles, users

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(authz.router)
api_router.include_router(users.router)
api_router.include_router(roles.router)

__all__ = ["api_router"]
