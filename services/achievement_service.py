from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from models.achievement import Achievement
from models.stats import UserStat
from core.config import settings
from core.logger import logger


@dataclass(frozen=True)
class AchievementRule:
    type: str
    title: str
    description: str
    icon_name: str
    condition: Callable[[UserStat], bool]


# Evaluated in this order; every qualifying rule fires
ACHIEVEMENT_RULES = (
    AchievementRule(
        "first_quiz", "Getting Started", "Completed your first quiz!", "Trophy",
        lambda s: (s.quizzes_taken or 0) >= 1,
    ),
    AchievementRule(
        "quiz_master", "Quiz Master", "Completed 10 quizzes!", "Crown",
        lambda s: (s.quizzes_taken or 0) >= settings.QUIZ_MASTER_THRESHOLD,
    ),
    AchievementRule(
        "perfect_score", "Perfect Score", "Achieved a perfect score!", "Star",
        lambda s: s.best_score == 100,
    ),
    AchievementRule(
        "streak_5", "On Fire", "Maintained a 5-quiz streak!", "Flame",
        lambda s: (s.current_streak or 0) >= settings.STREAK_ACHIEVEMENT_LENGTH,
    ),
    AchievementRule(
        "first_creator", "Quiz Creator", "Created your first quiz!", "Lightbulb",
        lambda s: (s.quizzes_created or 0) >= 1,
    ),
)


def evaluate_achievements(stats: UserStat, earned_types: Iterable[str]) -> List[AchievementRule]:
    """Rules the stats qualify for that have not been earned yet."""
    earned = set(earned_types)
    return [rule for rule in ACHIEVEMENT_RULES if rule.type not in earned and rule.condition(stats)]


class AchievementService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_achievements(self, user_id: str) -> List[Achievement]:
        result = await self.db.execute(
            select(Achievement)
            .filter(Achievement.user_id == user_id)
            .order_by(desc(Achievement.earned_at), desc(Achievement.id))
        )
        return result.scalars().all()

    async def get_achievement_types(self, user_id: str) -> Set[str]:
        result = await self.db.execute(select(Achievement.type).filter(Achievement.user_id == user_id))
        return set(result.scalars().all())

    async def check_and_award(self, user_id: str, stats: Optional[UserStat] = None) -> List[Achievement]:
        """
        Persist every newly qualifying achievement and return them.

        Flushes but does not commit. Users without statistics earn nothing.
        """
        if stats is None:
            result = await self.db.execute(select(UserStat).filter(UserStat.user_id == user_id))
            stats = result.scalar_one_or_none()
            if not stats:
                return []

        earned = await self.get_achievement_types(user_id)
        awarded = []
        for rule in evaluate_achievements(stats, earned):
            achievement = Achievement(
                user_id=user_id,
                type=rule.type,
                title=rule.title,
                description=rule.description,
                icon_name=rule.icon_name,
            )
            self.db.add(achievement)
            awarded.append(achievement)

        if awarded:
            await self.db.flush()
            logger.info("Achievements awarded", user_id=user_id, types=[a.type for a in awarded])
        return awarded
