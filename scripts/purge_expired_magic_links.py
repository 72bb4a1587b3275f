"""Delete expired magic links.

Run periodically (e.g. from cron):

    python -m scripts.purge_expired_magic_links
"""

import asyncio
import logging

from app.db.postgres import SessionLocal, engine
from app.modules.auth.repository import MagicLinkRepository
from app.modules.auth.service import utcnow


logger = logging.getLogger("app.auth")


async def purge_expired() -> int:
    async with SessionLocal() as session:
        deleted = await MagicLinkRepository(session).delete_expired(utcnow())
        await session.commit()
    logger.info("Purged %d expired magic links", deleted)
    return deleted


async def main() -> None:
    try:
        await purge_expired()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(main())
