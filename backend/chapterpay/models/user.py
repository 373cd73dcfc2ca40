from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    username = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, unique=True, index=True)
    role = Column(String, default="reader")
    coins = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),)
