from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.database import get_db
from card_exchange.core.deps import get_current_user, get_exchange_service
from card_exchange.models.user import User
from card_exchange.schemas.common import Pagination
from card_exchange.schemas.exchange import (
    CreateExchangeRequest, ExchangePrice, ExchangeRequestOut, ExchangeResult, ExchangeHistoryPage,
    ExchangeRecordOut,
)
from card_exchange.services.exchange import ExchangeService

router = APIRouter(prefix="/api/exchanges", tags=["exchanges"])

@router.post("", response_model=ExchangeRequestOut, status_code=201)
async def create_exchange(
    body: CreateExchangeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    return await service.create_exchange_request(db, user.id, body.card_id)

@router.get("/price/{card_id}", response_model=ExchangePrice)
async def get_price(
    card_id: int,
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    return await service.calculate_exchange_price(db, card_id)

@router.get("/pending", response_model=List[ExchangeRequestOut])
async def get_pending(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    return await service.get_pending_requests(db, user.id)

@router.get("/sent", response_model=List[ExchangeRequestOut])
async def get_sent(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    return await service.get_sent_requests(db, user.id)

@router.get("/history", response_model=ExchangeHistoryPage)
async def get_history(
    page: int = Query(1),
    page_size: int = Query(20),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    pagination = Pagination(page=page, page_size=page_size)
    records, total = await service.get_exchange_history(db, user.id, pagination)
    return ExchangeHistoryPage(
        records=[ExchangeRecordOut.for_viewer(r, user.id) for r in records],
        total_count=total,
        page=pagination.page,
        page_size=pagination.page_size,
        has_more=pagination.has_more(total),
    )

@router.post("/{exchange_id}/accept", response_model=ExchangeResult)
async def accept_exchange(
    exchange_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    return await service.accept_exchange(db, exchange_id, user.id)

@router.post("/{exchange_id}/reject")
async def reject_exchange(
    exchange_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    await service.reject_exchange(db, exchange_id, user.id)
    return {"message": "rejected"}

@router.post("/{exchange_id}/cancel")
async def cancel_exchange(
    exchange_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: ExchangeService = Depends(get_exchange_service),
):
    await service.cancel_exchange(db, exchange_id, user.id)
    return {"message": "cancelled"}
