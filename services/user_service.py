from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.user import User
from core.exceptions import ValidationError
from core.logger import logger

class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        return result.scalar_one_or_none()

    async def ensure_user(self, user_id: str, **profile) -> tuple[User, bool]:
        """Get or add the user row without committing."""
        if not user_id:
            raise ValidationError("An authenticated user id is required")

        user = await self.get_user(user_id)
        if user:
            # Fill in profile info the identity provider did not send before
            for key in ("name", "email", "image"):
                if profile.get(key) and not getattr(user, key):
                    setattr(user, key, profile[key])
            return user, False

        user = User(id=user_id, name=profile.get("name") or "", email=profile.get("email"), image=profile.get("image"))
        self.db.add(user)
        await self.db.flush()
        logger.info("New user created", user_id=user_id)
        return user, True

    async def get_or_create_user(self, user_id: str, **profile) -> tuple[User, bool]:
        user, is_new = await self.ensure_user(user_id, **profile)
        await self.db.commit()
        return user, is_new
