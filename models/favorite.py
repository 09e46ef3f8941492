from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from models.base import Base, utcnow
from models.user import User  # noqa: F401  (FK target)
from models.quiz import Quiz  # noqa: F401  (FK target)

class QuizFavorite(Base):
    __tablename__ = "quiz_favorites"
    __table_args__ = (UniqueConstraint("user_id", "quiz_id", name="uq_favorites_user_quiz"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
