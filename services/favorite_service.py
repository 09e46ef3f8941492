from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, desc
from sqlalchemy.exc import IntegrityError
from models.favorite import QuizFavorite
from models.quiz import Quiz
from services.user_service import UserService
from core.exceptions import NotFoundError
from core.logger import logger

class FavoriteService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_favorited(self, user_id: str, quiz_id: int) -> bool:
        result = await self.db.execute(
            select(QuizFavorite.id).filter(QuizFavorite.user_id == user_id, QuizFavorite.quiz_id == quiz_id)
        )
        return result.scalar_one_or_none() is not None

    async def add_favorite(self, user_id: str, quiz_id: int) -> bool:
        """Returns False if the quiz was already a favorite."""
        quiz = (await self.db.execute(select(Quiz.id).filter(Quiz.id == quiz_id))).scalar_one_or_none()
        if quiz is None:
            raise NotFoundError("Quiz", quiz_id)

        if await self.is_favorited(user_id, quiz_id):
            return False

        await UserService(self.db).ensure_user(user_id)
        self.db.add(QuizFavorite(user_id=user_id, quiz_id=quiz_id))
        try:
            await self.db.commit()
        except IntegrityError:
            # Unique (user, quiz): a concurrent request got there first
            await self.db.rollback()
            return False
        logger.info("Quiz favorited", user_id=user_id, quiz_id=quiz_id)
        return True

    async def remove_favorite(self, user_id: str, quiz_id: int) -> bool:
        result = await self.db.execute(
            delete(QuizFavorite).where(QuizFavorite.user_id == user_id, QuizFavorite.quiz_id == quiz_id)
        )
        await self.db.commit()
        removed = result.rowcount > 0
        logger.info("Quiz unfavorited", user_id=user_id, quiz_id=quiz_id, removed=removed)
        return removed

    async def toggle_favorite(self, user_id: str, quiz_id: int) -> bool:
        """Flip membership and return whether the quiz is now a favorite."""
        if await self.is_favorited(user_id, quiz_id):
            await self.remove_favorite(user_id, quiz_id)
            return False
        await self.add_favorite(user_id, quiz_id)
        return True

    async def get_user_favorites(self, user_id: str) -> List[dict]:
        query = (
            select(
                Quiz.id,
                Quiz.title,
                Quiz.description,
                Quiz.creator_id,
                Quiz.tags,
                Quiz.total_points,
                Quiz.difficulty,
                Quiz.estimated_time,
                Quiz.created_at,
                QuizFavorite.created_at.label("favorite_created_at"),
            )
            .select_from(QuizFavorite)
            .join(Quiz, Quiz.id == QuizFavorite.quiz_id)
            .filter(QuizFavorite.user_id == user_id)
            .order_by(desc(QuizFavorite.created_at), desc(QuizFavorite.id))
        )
        rows = (await self.db.execute(query)).all()
        return [dict(row._mapping) for row in rows]
