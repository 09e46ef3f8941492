import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from core.logger import setup_logging, logger
from db.session import AsyncSessionLocal, engine
from services.stats_service import StatsService
from services.user_locks import close_lock_redis


async def recompute_ranks_job():
    async with AsyncSessionLocal() as session:
        try:
            await StatsService(session).recompute_ranks()
        except Exception as e:
            await session.rollback()
            logger.error("Rank recompute failed", error=str(e))


async def main():
    # Setup structured logging
    setup_logging()

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        recompute_ranks_job,
        trigger="interval",
        seconds=settings.RANK_RECOMPUTE_INTERVAL_SECONDS,
        id=settings.RANK_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started (Rank recompute).", env=settings.ENV, interval=settings.RANK_RECOMPUTE_INTERVAL_SECONDS)

    # First pass right away so fresh deployments have ranks
    await recompute_ranks_job()

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await close_lock_redis()
        await engine.dispose()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application stopped.")
