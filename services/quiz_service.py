from typing import Any, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.exc import SQLAlchemyError
from redis.asyncio import Redis
from models.quiz import Quiz, Question, QUESTION_TYPES, DIFFICULTIES
from models.attempt import QuizAttempt
from models.achievement import Achievement
from models.favorite import QuizFavorite
from services.grading import MULTIPLE_CHOICE, CHECKBOX, correct_answer_for
from services.stats_service import StatsService
from services.achievement_service import AchievementService
from services.user_service import UserService
from services.user_locks import user_stats_lock
from core.config import settings
from core.exceptions import NotFoundError, PersistenceError, ValidationError
from core.logger import logger


SEARCH_SORTS = {
    "newest": (Quiz.created_at.desc(), Quiz.id.desc()),
    "oldest": (Quiz.created_at.asc(), Quiz.id.asc()),
    "title": (Quiz.title.asc(), Quiz.id.asc()),
    "points": (Quiz.total_points.desc(), Quiz.id.desc()),
}


def validate_question(index: int, data: dict) -> dict:
    """Check one question payload and return it normalized for storage."""
    label = f"Question {index + 1}"
    question_type = data.get("type")
    if question_type not in QUESTION_TYPES:
        raise ValidationError(f"{label}: unsupported type {question_type!r}")

    text = (data.get("question") or "").strip()
    if not text:
        raise ValidationError(f"{label}: question text is required")

    correct = data.get("correct_answers")
    if correct is None or correct == "" or correct == []:
        raise ValidationError(f"{label}: mark at least one correct answer")
    key = correct_answer_for(question_type, correct)

    options = data.get("options") or []
    if question_type in (MULTIPLE_CHOICE, CHECKBOX):
        if len(options) < 2:
            raise ValidationError(f"{label}: choice questions need at least two options")
        chosen = (key.value,) if question_type == MULTIPLE_CHOICE else key.values
        missing = [answer for answer in chosen if answer not in options]
        if missing:
            raise ValidationError(f"{label}: correct answers {missing} are not among the options")
        stored_correct: Any = key.value if question_type == MULTIPLE_CHOICE else list(key.values)
    else:
        options = None
        stored_correct = list(key.keywords)

    points = data.get("points", 1)
    if not isinstance(points, int) or isinstance(points, bool) or points < 1:
        raise ValidationError(f"{label}: points must be a positive integer")

    return {
        "type": question_type,
        "question": text,
        "options": list(options) if options is not None else None,
        "correct_answers": stored_correct,
        "points": points,
        "explanation": data.get("explanation") or None,
    }


class QuizService:
    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None):
        self.db = db
        self.redis = redis

    async def create_quiz(
        self,
        user_id: str,
        title: str,
        questions: Sequence[dict],
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        difficulty: Optional[str] = None,
        estimated_time: Optional[int] = None,
        publish: bool = False,
    ) -> Tuple[Quiz, List[Achievement]]:
        """
        Create a quiz with its questions, count it for the creator and award
        creator achievements. Publishing snapshots the total points.
        """
        if not title or not title.strip():
            raise ValidationError("Quiz title is required")
        if not questions:
            raise ValidationError("At least one question is required")
        if len(questions) > settings.MAX_QUESTIONS_PER_QUIZ:
            raise ValidationError(f"A quiz can have at most {settings.MAX_QUESTIONS_PER_QUIZ} questions")
        difficulty = difficulty or settings.DEFAULT_DIFFICULTY
        if difficulty not in DIFFICULTIES:
            raise ValidationError(f"Unsupported difficulty {difficulty!r}")
        if estimated_time is not None and estimated_time < 1:
            raise ValidationError("Estimated time must be a positive number of minutes")

        cleaned = [validate_question(i, q) for i, q in enumerate(questions)]
        stats_service = StatsService(self.db, redis=self.redis)

        try:
            async with user_stats_lock(user_id, stats_service.redis):
                await UserService(self.db).ensure_user(user_id)
                quiz = Quiz(
                    creator_id=user_id,
                    title=title.strip(),
                    description=description,
                    tags=sorted({t.strip() for t in (tags or []) if t and t.strip()}),
                    difficulty=difficulty,
                    estimated_time=estimated_time,
                )
                self.db.add(quiz)
                await self.db.flush()

                for order, data in enumerate(cleaned):
                    self.db.add(Question(quiz_id=quiz.id, order=order, **data))
                await self.db.flush()

                stats = await stats_service.apply_quiz_created(user_id)
                new_achievements = await AchievementService(self.db).check_and_award(user_id, stats=stats)

                if publish:
                    quiz.is_published = True
                    quiz.total_points = sum(q["points"] for q in cleaned)

                await self.db.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            await self.db.rollback()
            logger.error("Error creating quiz", user_id=user_id, error=str(e))
            raise PersistenceError("Failed to create quiz. Please try again.") from e

        await self.db.refresh(quiz)
        logger.info("Quiz saved", user_id=user_id, quiz_id=quiz.id, title=quiz.title, published=quiz.is_published)
        return quiz, new_achievements

    async def publish_quiz(self, quiz_id: int, user_id: Optional[str] = None) -> Quiz:
        quiz = await self._get_owned(quiz_id, user_id)
        total = await self.db.execute(
            select(func.coalesce(func.sum(Question.points), 0)).filter(Question.quiz_id == quiz_id)
        )
        quiz.is_published = True
        quiz.total_points = int(total.scalar())
        await self.db.commit()
        await self.db.refresh(quiz)
        logger.info("Quiz published", quiz_id=quiz_id, total_points=quiz.total_points)
        return quiz

    async def get_quiz(self, quiz_id: int) -> Optional[Quiz]:
        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id))
        return result.scalar_one_or_none()

    async def get_questions(self, quiz_id: int) -> List[Question]:
        result = await self.db.execute(
            select(Question).filter(Question.quiz_id == quiz_id).order_by(Question.order.asc())
        )
        return result.scalars().all()

    async def get_quiz_with_questions(self, quiz_id: int) -> Optional[Tuple[Quiz, List[Question]]]:
        quiz = await self.get_quiz(quiz_id)
        if not quiz:
            return None
        return quiz, await self.get_questions(quiz_id)

    async def _get_owned(self, quiz_id: int, user_id: Optional[str]) -> Quiz:
        query = select(Quiz).filter(Quiz.id == quiz_id)
        if user_id is not None:
            query = query.filter(Quiz.creator_id == user_id)
        quiz = (await self.db.execute(query)).scalar_one_or_none()
        if not quiz:
            raise NotFoundError("Quiz", quiz_id)
        return quiz

    async def update_quiz(self, quiz_id: int, user_id: str, **updates) -> Quiz:
        """Update quiz metadata. Questions of a published quiz are immutable and not touched here."""
        allowed = {"title", "description", "tags", "difficulty", "estimated_time"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}")
        if "title" in updates and not (updates["title"] or "").strip():
            raise ValidationError("Quiz title is required")
        if "difficulty" in updates and updates["difficulty"] not in DIFFICULTIES:
            raise ValidationError(f"Unsupported difficulty {updates['difficulty']!r}")

        quiz = await self._get_owned(quiz_id, user_id)
        for key, value in updates.items():
            setattr(quiz, key, value)
        await self.db.commit()
        await self.db.refresh(quiz)
        logger.info("Quiz updated", quiz_id=quiz_id, user_id=user_id, fields=sorted(updates))
        return quiz

    async def delete_quiz(self, quiz_id: int, user_id: str) -> bool:
        quiz = await self._get_owned(quiz_id, user_id)
        # Explicit deletes so SQLite without FK enforcement cascades too
        await self.db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz_id))
        await self.db.execute(delete(QuizFavorite).where(QuizFavorite.quiz_id == quiz_id))
        await self.db.delete(quiz)
        await self.db.commit()
        logger.info("Quiz deleted", quiz_id=quiz_id, user_id=user_id)
        return True

    async def get_published_quizzes(self, limit: int = 20, offset: int = 0) -> List[Quiz]:
        result = await self.db.execute(
            select(Quiz)
            .filter(Quiz.is_published == True)
            .order_by(Quiz.created_at.desc(), Quiz.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def get_user_quizzes(self, user_id: str) -> List[Quiz]:
        result = await self.db.execute(
            select(Quiz).filter(Quiz.creator_id == user_id).order_by(Quiz.created_at.desc(), Quiz.id.desc())
        )
        return result.scalars().all()

    async def search_quizzes(
        self,
        term: str = "",
        tags: Optional[Iterable[str]] = None,
        difficulty: Optional[str] = None,
        sort_by: str = "newest",
        limit: Optional[int] = None,
    ) -> List[Quiz]:
        """
        Published quizzes whose title or description contains ``term``,
        optionally sharing a tag and matching a difficulty ("all" means any).

        ``sort_by`` is one of newest, oldest, title or points; anything else
        falls back to newest.
        """
        query = select(Quiz).filter(Quiz.is_published == True)
        term = (term or "").strip()
        if term:
            pattern = f"%{term}%"
            query = query.filter(or_(Quiz.title.ilike(pattern), Quiz.description.ilike(pattern)))
        if difficulty and difficulty != "all":
            query = query.filter(Quiz.difficulty == difficulty)

        order = SEARCH_SORTS.get(sort_by, SEARCH_SORTS["newest"])
        limit = limit or settings.SEARCH_RESULT_LIMIT
        wanted = {t.lower() for t in (tags or []) if t}
        if not wanted:
            query = query.limit(limit)
        result = await self.db.execute(query.order_by(*order))
        quizzes = result.scalars().all()

        if wanted:
            # JSON tag arrays have no portable overlap operator
            quizzes = [q for q in quizzes if wanted & {t.lower() for t in (q.tags or [])}][:limit]
        return quizzes

    async def get_all_tags(self) -> List[str]:
        """Sorted distinct tags across published quizzes."""
        result = await self.db.execute(select(Quiz.tags).filter(Quiz.is_published == True))
        tags = set()
        for quiz_tags in result.scalars().all():
            for tag in quiz_tags or []:
                if isinstance(tag, str) and tag.strip():
                    tags.add(tag.strip())
        return sorted(tags)

    async def get_quiz_counts(self) -> dict:
        total = (await self.db.execute(select(func.count(Quiz.id)))).scalar() or 0
        published = (await self.db.execute(
            select(func.count(Quiz.id)).filter(Quiz.is_published == True)
        )).scalar() or 0
        return {"total": total, "published": published}

    async def get_quiz_analytics(self, quiz_id: int) -> dict:
        result = await self.db.execute(
            select(
                func.count(QuizAttempt.id),
                func.avg(QuizAttempt.percentage),
                func.avg(QuizAttempt.time_spent),
            ).filter(QuizAttempt.quiz_id == quiz_id)
        )
        total_attempts, avg_score, avg_time = result.one()
        return {
            "total_attempts": total_attempts or 0,
            "average_score": int(float(avg_score or 0) + 0.5),
            "average_time": int(float(avg_time or 0) + 0.5),
        }

    async def get_dashboard_stats(self, user_id: str) -> dict:
        created = (await self.db.execute(
            select(func.count(Quiz.id)).filter(Quiz.creator_id == user_id)
        )).scalar() or 0
        published = (await self.db.execute(
            select(func.count(Quiz.id)).filter(Quiz.creator_id == user_id, Quiz.is_published == True)
        )).scalar() or 0
        attempts_on_mine = (await self.db.execute(
            select(func.count(QuizAttempt.id))
            .join(Quiz, and_(Quiz.id == QuizAttempt.quiz_id, Quiz.creator_id == user_id))
        )).scalar() or 0
        stats = await StatsService(self.db).get_user_stats(user_id)

        return {
            "total_quizzes_created": created,
            "published_quizzes": published,
            "total_attempts_on_my_quizzes": attempts_on_mine,
            "my_quizzes_taken": stats.quizzes_taken if stats else 0,
            "my_average_score": stats.average_score if stats else 0,
            "my_current_streak": stats.current_streak if stats else 0,
        }
