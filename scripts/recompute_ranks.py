import asyncio
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.session import AsyncSessionLocal
from services.stats_service import StatsService
from core.logger import setup_logging, logger

async def recompute_ranks():
    async with AsyncSessionLocal() as session:
        try:
            changed = await StatsService(session).recompute_ranks()
            logger.info("Ranks recomputed", changed=changed)
        except Exception as e:
            await session.rollback()
            logger.error("Error recomputing ranks", error=str(e))
            raise

if __name__ == "__main__":
    setup_logging()
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(recompute_ranks())
