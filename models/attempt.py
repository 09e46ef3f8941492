from sqlalchemy import Column, Integer, String, JSON, ForeignKey, DateTime, Index
from models.base import Base, utcnow
from models.user import User  # noqa: F401  (FK target)
from models.quiz import Quiz  # noqa: F401  (FK target)

class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    score = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    answers = Column(JSON, nullable=False)  # question id (as str) -> submitted answer
    time_spent = Column(Integer, nullable=True)  # seconds
    completed_at = Column(DateTime, default=utcnow, nullable=False, index=True)

# Per-quiz leaderboard scans
Index("idx_attempts_quiz_percentage", QuizAttempt.quiz_id, QuizAttempt.percentage)
Index("idx_attempts_user_completed", QuizAttempt.user_id, QuizAttempt.completed_at)
