from sqlalchemy import Column, Integer, String, Text, JSON, Boolean, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin, utcnow
from models.user import User  # noqa: F401  (FK target)

QUESTION_TYPES = ("multiple_choice", "checkbox", "short_answer")
DIFFICULTIES = ("easy", "medium", "hard")


class Quiz(Base, TimestampMixin):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    is_published = Column(Boolean, default=False, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    difficulty = Column(String(10), default="medium", nullable=False)
    estimated_time = Column(Integer, nullable=True)  # minutes

    questions = relationship(
        "Question",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.order",
    )


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    type = Column(String(20), nullable=False)
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)  # choice types only
    # str for multiple_choice, list of str otherwise
    correct_answers = Column(JSON, nullable=False)
    points = Column(Integer, default=1, nullable=False)
    explanation = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    quiz = relationship("Quiz", back_populates="questions")
