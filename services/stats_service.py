from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from redis.asyncio import Redis
from models.stats import UserStat
from models.user import User
from models.base import utcnow
from services.user_locks import get_lock_redis
from services.user_service import UserService
from core.config import settings
from core.logger import logger


def _round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def apply_attempt_to(stat: UserStat, percentage: int, now: Optional[datetime] = None) -> UserStat:
    """
    Fold one attempt percentage into a statistics row, in place.

    A row with ``quizzes_taken == 0`` is the absent state: it may exist only
    because the user created a quiz first.
    """
    threshold = settings.STREAK_THRESHOLD
    taken = stat.quizzes_taken or 0

    if taken == 0:
        stat.quizzes_taken = 1
        stat.total_points = percentage
        stat.average_score = percentage
        stat.best_score = percentage
        stat.current_streak = 1 if percentage >= threshold else 0
        stat.longest_streak = stat.current_streak
    else:
        stat.quizzes_taken = taken + 1
        stat.total_points = (stat.total_points or 0) + percentage
        stat.average_score = _round_half_up(stat.total_points, stat.quizzes_taken)
        stat.best_score = max(stat.best_score or 0, percentage)
        stat.current_streak = (stat.current_streak or 0) + 1 if percentage >= threshold else 0
        stat.longest_streak = max(stat.longest_streak or 0, stat.current_streak)

    stat.updated_at = now or utcnow()
    return stat


def new_user_stat(user_id: str) -> UserStat:
    return UserStat(
        user_id=user_id,
        quizzes_created=0,
        quizzes_taken=0,
        total_points=0,
        average_score=0,
        best_score=0,
        current_streak=0,
        longest_streak=0,
    )


class StatsService:
    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None):
        self.db = db
        self.redis = redis if redis is not None else get_lock_redis()

    async def get_user_stats(self, user_id: str) -> Optional[UserStat]:
        result = await self.db.execute(select(UserStat).filter(UserStat.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_for_update(self, user_id: str) -> UserStat:
        # Row lock; a no-op on SQLite, which serializes writers anyway
        result = await self.db.execute(
            select(UserStat).filter(UserStat.user_id == user_id).with_for_update()
        )
        user_stat = result.scalar_one_or_none()
        if not user_stat:
            await UserService(self.db).ensure_user(user_id)
            user_stat = new_user_stat(user_id)
            self.db.add(user_stat)
            await self.db.flush()
        return user_stat

    async def apply_attempt(self, user_id: str, percentage: int) -> UserStat:
        """
        Read-modify-write of the user's statistics for one finished attempt.

        Flushes but does not commit: the caller owns the transaction and holds
        ``user_stats_lock`` for the user until it commits.
        """
        user_stat = await self._get_for_update(user_id)
        apply_attempt_to(user_stat, percentage)
        await self.db.flush()

        logger.info(
            "User stats updated",
            user_id=user_id,
            percentage=percentage,
            quizzes_taken=user_stat.quizzes_taken,
            current_streak=user_stat.current_streak,
        )
        return user_stat

    async def apply_quiz_created(self, user_id: str) -> UserStat:
        user_stat = await self._get_for_update(user_id)
        user_stat.quizzes_created = (user_stat.quizzes_created or 0) + 1
        user_stat.updated_at = utcnow()
        await self.db.flush()

        logger.info("Quiz creation counted", user_id=user_id, quizzes_created=user_stat.quizzes_created)
        return user_stat

    async def get_global_leaderboard(self, limit: Optional[int] = None) -> List[dict]:
        """Users ordered by cumulative points, then average score."""
        query = (
            select(
                UserStat.user_id,
                User.name,
                User.image,
                UserStat.total_points,
                UserStat.average_score,
                UserStat.quizzes_taken,
                UserStat.current_streak,
                UserStat.rank,
            )
            .outerjoin(User, User.id == UserStat.user_id)
            .order_by(desc(UserStat.total_points), desc(UserStat.average_score), UserStat.user_id.asc())
            .limit(limit or settings.LEADERBOARD_LIMIT)
        )
        rows = (await self.db.execute(query)).all()

        return [{
            "position": i,
            "user_id": row.user_id,
            "name": row.name or f"User {row.user_id}",
            "image": row.image,
            "total_points": row.total_points,
            "average_score": row.average_score,
            "quizzes_taken": row.quizzes_taken,
            "current_streak": row.current_streak,
            "rank": row.rank,
        } for i, row in enumerate(rows, 1)]

    async def recompute_ranks(self) -> int:
        """Write the leaderboard position of every user into ``rank``. Commits."""
        result = await self.db.execute(
            select(UserStat).order_by(
                desc(UserStat.total_points), desc(UserStat.average_score), UserStat.user_id.asc()
            )
        )
        stats = result.scalars().all()
        changed = 0
        for position, user_stat in enumerate(stats, 1):
            if user_stat.rank != position:
                user_stat.rank = position
                changed += 1

        await self.db.commit()
        logger.info("Ranks recomputed", users=len(stats), changed=changed)
        return changed

    async def get_user_rank(self, user_id: str) -> Optional[dict]:
        user_stat = await self.get_user_stats(user_id)
        if not user_stat:
            return None
        return {
            "user_id": user_id,
            "rank": user_stat.rank,
            "total_points": user_stat.total_points,
            "average_score": user_stat.average_score,
        }
