from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from card_exchange.database import Base

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="ck_users_coin_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    nickname = Column(String(100), nullable=True)
    # Owned by the coin ledger; never assigned outside card_exchange.services.ledger
    coin_balance = Column(Integer, nullable=False, default=0)
    initial_coin_grant = Column(Integer, nullable=False, default=0)
    exchange_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    transactions = relationship("CoinTransaction", back_populates="user")
    cards = relationship("Card", back_populates="owner")
