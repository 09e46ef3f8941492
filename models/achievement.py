from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, UniqueConstraint
from models.base import Base, utcnow
from models.user import User  # noqa: F401  (FK target)

class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_achievements_user_type"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon_name = Column(String(50), nullable=True)
    earned_at = Column(DateTime, default=utcnow, nullable=False)
