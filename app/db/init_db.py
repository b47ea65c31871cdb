import asyncio
import logging

from app.core.settings import settings
from app.db.session import AsyncSessionLocal
from app.services.roles import seed_default_roles

logger = logging.getLogger(__name__)


async def init_db(org_id: str | None = None) -> None:
    """
    Seed the default role matrix for an org (the default org when omitted).
    """
    target = org_id or settings.default_org_id
    async with AsyncSessionLocal() as session:
        seeded = await seed_default_roles(session, target)
    logger.info("Database initialised", extra={"org_id": target, "role_count": len(seeded)})


if __name__ == "__main__":
    asyncio.run(init_db())
