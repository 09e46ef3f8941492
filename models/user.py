from sqlalchemy import Column, String
from models.base import Base, TimestampMixin

class User(Base, TimestampMixin):
    __tablename__ = "users"

    # Issued by the identity provider
    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=True)
    image = Column(String(1024), nullable=True)

