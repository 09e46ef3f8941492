from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from models.base import Base, utcnow
from models.user import User  # noqa: F401  (FK target)

class UserStat(Base):
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)
    quizzes_created = Column(Integer, default=0, nullable=False)
    quizzes_taken = Column(Integer, default=0, nullable=False)
    # Sum of attempt percentages, not raw quiz points
    total_points = Column(Integer, default=0, nullable=False)
    average_score = Column(Integer, default=0, nullable=False)
    best_score = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


# Index for fast leaderboard querying
Index("idx_stats_leaderboard", UserStat.total_points, UserStat.average_score)
