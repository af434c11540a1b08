from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
import enum
from card_exchange.database import Base

class ExchangeStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    cancelled = "cancelled"
    expired = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ExchangeStatus.pending

class ExchangeRequest(Base):
    __tablename__ = "exchange_requests"
    __table_args__ = (
        CheckConstraint("requester_id <> owner_id", name="ck_exchange_requests_not_self"),
        CheckConstraint("coin_amount > 0", name="ck_exchange_requests_amount_positive"),
        Index("ix_exchange_requests_status_expires", "status", "expires_at"),
    )

    id = Column(Integer, primary_key=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coin_amount = Column(Integer, nullable=False)
    status = Column(Enum(ExchangeStatus), nullable=False, default=ExchangeStatus.pending)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    def is_expired(self, now) -> bool:
        return now > self.expires_at

class ExchangeRecord(Base):
    """Completed exchange. Written once, on accept."""
    __tablename__ = "exchange_records"

    id = Column(Integer, primary_key=True)
    exchange_request_id = Column(Integer, ForeignKey("exchange_requests.id"), nullable=False, unique=True)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coin_amount = Column(Integer, nullable=False)
    completed_at = Column(DateTime, server_default=func.now())
