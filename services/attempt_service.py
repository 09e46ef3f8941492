from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc, and_
from sqlalchemy.exc import SQLAlchemyError
from redis.asyncio import Redis
from models.attempt import QuizAttempt
from models.achievement import Achievement
from models.quiz import Quiz
from models.user import User
from services.grading import ScoreResult, score_attempt
from services.stats_service import StatsService
from services.achievement_service import AchievementService
from services.user_service import UserService
from services.quiz_service import QuizService
from services.user_locks import user_stats_lock
from core.config import settings
from core.exceptions import NotFoundError, PersistenceError, SubmissionFailedError, ValidationError
from core.logger import logger


@dataclass
class SubmissionResult:
    attempt: QuizAttempt
    new_achievements: List[Achievement] = field(default_factory=list)
    score: Optional[ScoreResult] = None


class AttemptService:
    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None):
        self.db = db
        self.redis = redis
        self.stats = StatsService(db, redis=redis)
        self.achievements = AchievementService(db)

    async def submit(
        self,
        quiz_id: int,
        user_id: str,
        score: int,
        total_points: int,
        percentage: int,
        answers: Dict[Any, Any],
        time_spent: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Persist a graded attempt, fold it into the user's statistics and award
        achievements, all in one transaction.

        Score and percentage are stored as given. Any storage failure rolls the
        whole submission back and surfaces as SubmissionFailedError.
        """
        if not user_id:
            raise ValidationError("An authenticated user id is required")
        if await QuizService(self.db).get_quiz(quiz_id) is None:
            raise NotFoundError("Quiz", quiz_id)

        try:
            # Held through commit: one transaction per user touches stats and achievements
            async with user_stats_lock(user_id, self.stats.redis):
                await UserService(self.db).ensure_user(user_id)
                attempt = QuizAttempt(
                    quiz_id=quiz_id,
                    user_id=user_id,
                    score=score,
                    total_points=total_points,
                    percentage=percentage,
                    answers={str(k): v for k, v in (answers or {}).items()},
                    time_spent=time_spent,
                )
                self.db.add(attempt)
                await self.db.flush()

                user_stat = await self.stats.apply_attempt(user_id, percentage)
                new_achievements = await self.achievements.check_and_award(user_id, stats=user_stat)

                await self.db.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            await self.db.rollback()
            logger.error(
                "Error submitting quiz attempt",
                quiz_id=quiz_id,
                user_id=user_id,
                error=str(e),
            )
            raise SubmissionFailedError() from e

        logger.info(
            "Attempt submitted",
            attempt_id=attempt.id,
            quiz_id=quiz_id,
            user_id=user_id,
            percentage=percentage,
            achievements=[a.type for a in new_achievements],
        )
        return SubmissionResult(attempt=attempt, new_achievements=new_achievements)

    async def grade_and_submit(
        self,
        quiz_id: int,
        user_id: str,
        answers: Dict[Any, Any],
        time_spent: Optional[int] = None,
    ) -> SubmissionResult:
        """Load the quiz, score the answers and submit the result."""
        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id))
        quiz = result.scalar_one_or_none()
        # Drafts are only visible to their creator
        if not quiz or (not quiz.is_published and quiz.creator_id != user_id):
            raise NotFoundError("Quiz", quiz_id)

        questions = await QuizService(self.db).get_questions(quiz_id)
        total_points = quiz.total_points if quiz.is_published else None
        graded = score_attempt(questions, answers, total_points=total_points)

        submission = await self.submit(
            quiz_id=quiz_id,
            user_id=user_id,
            score=graded.total_score,
            total_points=graded.total_points,
            percentage=graded.percentage,
            answers=answers,
            time_spent=time_spent,
        )
        submission.score = graded
        return submission

    async def get_user_attempts(self, user_id: str, limit: int = 20) -> List[dict]:
        query = (
            select(
                QuizAttempt.id,
                QuizAttempt.quiz_id,
                QuizAttempt.score,
                QuizAttempt.total_points,
                QuizAttempt.percentage,
                QuizAttempt.time_spent,
                QuizAttempt.completed_at,
                Quiz.title.label("quiz_title"),
                Quiz.difficulty.label("quiz_difficulty"),
            )
            .outerjoin(Quiz, Quiz.id == QuizAttempt.quiz_id)
            .filter(QuizAttempt.user_id == user_id)
            .order_by(desc(QuizAttempt.completed_at), desc(QuizAttempt.id))
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()
        return [dict(row._mapping) for row in rows]

    async def get_quiz_attempts(self, quiz_id: int, limit: int = 50) -> List[dict]:
        query = (
            select(
                QuizAttempt.id,
                QuizAttempt.user_id,
                QuizAttempt.score,
                QuizAttempt.total_points,
                QuizAttempt.percentage,
                QuizAttempt.time_spent,
                QuizAttempt.completed_at,
                User.name.label("user_name"),
            )
            .outerjoin(User, User.id == QuizAttempt.user_id)
            .filter(QuizAttempt.quiz_id == quiz_id)
            .order_by(desc(QuizAttempt.percentage), desc(QuizAttempt.completed_at), desc(QuizAttempt.id))
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()
        return [dict(row._mapping) for row in rows]

    async def get_best_attempt(self, user_id: str, quiz_id: int) -> Optional[QuizAttempt]:
        result = await self.db.execute(
            select(QuizAttempt)
            .filter(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
            .order_by(desc(QuizAttempt.percentage), QuizAttempt.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_quiz_leaderboard(self, quiz_id: int, limit: Optional[int] = None) -> List[dict]:
        """Best percentage per user; ties broken by the fastest time at that percentage."""
        best_sq = (
            select(
                QuizAttempt.user_id,
                func.max(QuizAttempt.percentage).label("best_score"),
                func.count(QuizAttempt.id).label("attempt_count"),
            )
            .filter(QuizAttempt.quiz_id == quiz_id)
            .group_by(QuizAttempt.user_id)
            .subquery("best")
        )
        best_time = func.min(QuizAttempt.time_spent)
        query = (
            select(
                best_sq.c.user_id,
                User.name,
                best_sq.c.best_score,
                best_sq.c.attempt_count,
                best_time.label("best_time"),
            )
            .select_from(best_sq)
            .join(
                QuizAttempt,
                and_(
                    QuizAttempt.quiz_id == quiz_id,
                    QuizAttempt.user_id == best_sq.c.user_id,
                    QuizAttempt.percentage == best_sq.c.best_score,
                ),
            )
            .outerjoin(User, User.id == best_sq.c.user_id)
            .group_by(best_sq.c.user_id, User.name, best_sq.c.best_score, best_sq.c.attempt_count)
            .order_by(desc(best_sq.c.best_score), best_time.asc().nulls_last(), best_sq.c.user_id.asc())
            .limit(limit or settings.QUIZ_LEADERBOARD_LIMIT)
        )
        rows = (await self.db.execute(query)).all()

        return [{
            "position": i,
            "user_id": row.user_id,
            "name": row.name or f"User {row.user_id}",
            "best_score": row.best_score,
            "best_time": row.best_time,
            "attempt_count": row.attempt_count,
        } for i, row in enumerate(rows, 1)]
