from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from card_exchange.database import Base

class CoinReason(str, enum.Enum):
    card_created = "card_created"
    card_exchanged = "card_exchanged"
    daily_login = "daily_login"
    exchange_purchase = "exchange_purchase"
    exchange_refund = "exchange_refund"

class CoinTransaction(Base):
    """Append-only coin movement. ``amount`` is negative for debits."""
    __tablename__ = "coin_transactions"
    __table_args__ = (
        Index("ix_coin_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(Enum(CoinReason), nullable=False)
    reference_id = Column(Integer, nullable=True, index=True)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="transactions")
