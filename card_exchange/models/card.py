from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from card_exchange.database import Base

class Card(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False, default="")
    base_price = Column(Integer, nullable=False, default=10)
    like_count = Column(Integer, nullable=False, default=0)
    exchange_count = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="cards")

class CardCollection(Base):
    __tablename__ = "card_collections"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_collection_user_card"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    card_id = Column(Integer, ForeignKey("cards.id"), nullable=False)
    collected_at = Column(DateTime, server_default=func.now())
