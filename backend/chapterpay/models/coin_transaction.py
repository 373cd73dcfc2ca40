from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class CoinTransactionType:
    EARNED = "earned"
    SPENT = "spent"


class CoinTransaction(Base):
    __tablename__ = "coin_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    type = Column(String, index=True, nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    description = Column(String, nullable=True)
    balance_after = Column(Integer, nullable=False)
    related_item = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_coin_transactions_amount_positive"),
        CheckConstraint("balance_after >= 0", name="ck_coin_transactions_balance_non_negative"),
    )
