# Import every model so Base.metadata knows all tables
from models.base import Base
from models.user import User
from models.quiz import Quiz, Question
from models.attempt import QuizAttempt
from models.stats import UserStat
from models.achievement import Achievement
from models.favorite import QuizFavorite

__all__ = ["Base", "User", "Quiz", "Question", "QuizAttempt", "UserStat", "Achievement", "QuizFavorite"]
