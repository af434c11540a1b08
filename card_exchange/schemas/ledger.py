from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from card_exchange.models.ledger import CoinReason

class CoinTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    reason: CoinReason
    reference_id: Optional[int] = None
    balance_after: int
    created_at: datetime

class CoinHistoryPage(BaseModel):
    transactions: List[CoinTransactionOut]
    total_count: int
    page: int
    page_size: int
    has_more: bool

class BalanceOut(BaseModel):
    user_id: int
    coin_balance: int
