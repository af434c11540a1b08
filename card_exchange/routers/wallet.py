from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.database import get_db
from card_exchange.core.deps import get_current_user, get_exchange_service
from card_exchange.models.user import User
from card_exchange.schemas.common import Pagination
from card_exchange.schemas.ledger import BalanceOut, CoinHistoryPage, CoinTransactionOut
from card_exchange.services.exchange import ExchangeService

router = APIRouter(prefix="/api/wallet", tags=["wallet"])

@router.get("/balance", response_model=BalanceOut)
async def get_balance(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    balance = await service.ledger.get_balance(db, user.id)
    return BalanceOut(user_id=user.id, coin_balance=balance)

@router.get("/transactions", response_model=CoinHistoryPage)
async def get_transactions(
    page: int = Query(1),
    page_size: int = Query(20),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    pagination = Pagination(page=page, page_size=page_size)
    rows, total = await service.ledger.get_coin_history(db, user.id, pagination)
    return CoinHistoryPage(
        transactions=[CoinTransactionOut.model_validate(t) for t in rows],
        total_count=total,
        page=pagination.page,
        page_size=pagination.page_size,
        has_more=pagination.has_more(total),
    )

@router.post("/daily-login")
async def claim_daily_login(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    """Credit today's login reward; a second claim on the same day is a no-op."""
    new_balance = await service.ledger.grant_daily_login(db, user.id)
    await db.commit()
    return {"granted": new_balance is not None, "coin_balance": await service.ledger.get_balance(db, user.id)}
