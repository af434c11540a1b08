import enum
from datetime import datetime
from typing import List
from pydantic import BaseModel, ConfigDict, Field
from card_exchange.models.exchange import ExchangeStatus

class CreateExchangeRequest(BaseModel):
    card_id: int = Field(gt=0)

class ExchangePrice(BaseModel):
    base_price: int
    popularity_bonus: int
    final_price: int

class ExchangeRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    card_id: int
    owner_id: int
    coin_amount: int
    status: ExchangeStatus
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

class ExchangeDirection(str, enum.Enum):
    sent = "sent"
    received = "received"

class ExchangeRecordOut(BaseModel):
    """A completed exchange as seen by one of its two parties.

    ``sent`` means the viewer gave the card away; ``counterparty_id`` is the
    other party.
    """
    id: int
    exchange_request_id: int
    card_id: int
    from_user_id: int
    to_user_id: int
    counterparty_id: int
    direction: ExchangeDirection
    coin_amount: int
    completed_at: datetime

    @classmethod
    def for_viewer(cls, record, viewer_id: int) -> "ExchangeRecordOut":
        sent = record.from_user_id == viewer_id
        return cls(
            id=record.id,
            exchange_request_id=record.exchange_request_id,
            card_id=record.card_id,
            from_user_id=record.from_user_id,
            to_user_id=record.to_user_id,
            counterparty_id=record.to_user_id if sent else record.from_user_id,
            direction=ExchangeDirection.sent if sent else ExchangeDirection.received,
            coin_amount=record.coin_amount,
            completed_at=record.completed_at,
        )

class ExchangeResult(BaseModel):
    exchange_id: int
    card_id: int
    requester_new_balance: int
    owner_new_balance: int

class ExchangeHistoryPage(BaseModel):
    records: List[ExchangeRecordOut]
    total_count: int
    page: int
    page_size: int
    has_more: bool

class SweepSummary(BaseModel):
    total_found: int = 0
    processed_count: int = 0
    failed_count: int = 0
    total_refunded_amount: int = 0

    @property
    def all_successful(self) -> bool:
        return self.failed_count == 0

    @property
    def has_processed(self) -> bool:
        return self.processed_count > 0
