from datetime import timedelta

import pytest
from sqlalchemy import select, func
from card_exchange.core.errors import (
    ConflictError, InsufficientBalanceError, InvalidOperationError, NotFoundError,
)
from card_exchange.models.card import CardCollection
from card_exchange.models.exchange import ExchangeRequest, ExchangeStatus
from card_exchange.models.ledger import CoinTransaction, CoinReason
from card_exchange.services.invariants import check_exchange_ledger, check_user_ledger


async def _request_count(db) -> int:
    return await db.scalar(select(func.count(ExchangeRequest.id)))


@pytest.mark.asyncio
async def test_create_escrows_popularity_price(db, service, make_user, make_card, balance_of, clock):
    owner = await make_user()
    requester = await make_user(balance=100)
    card = await make_card(owner, base_price=10, like_count=25)

    request = await service.create_exchange_request(db, requester, card)

    assert request.status == ExchangeStatus.pending
    assert request.coin_amount == 12
    assert request.owner_id == owner
    assert request.expires_at == clock() + timedelta(hours=72)
    assert await balance_of(requester) == 88
    assert await balance_of(owner) == 100

    debit = await db.scalar(select(CoinTransaction).where(CoinTransaction.reference_id == request.id))
    assert debit.reason == CoinReason.exchange_purchase
    assert debit.amount == -12
    assert debit.balance_after == 88
    assert await check_exchange_ledger(db, request.id) == []
    assert await check_user_ledger(db, requester) == []


@pytest.mark.asyncio
async def test_price_follows_live_counters(db, service, make_user, make_card):
    owner = await make_user()
    card = await make_card(owner, base_price=10, like_count=0, exchange_count=3)

    price = await service.calculate_exchange_price(db, card)
    assert price.final_price == 16

    requester = await make_user()
    request = await service.create_exchange_request(db, requester, card)
    assert request.coin_amount == 16


@pytest.mark.asyncio
async def test_self_exchange_rejected_without_debit(db, service, make_user, make_card, balance_of):
    owner = await make_user(balance=100)
    card = await make_card(owner)

    with pytest.raises(InvalidOperationError):
        await service.create_exchange_request(db, owner, card)

    assert await balance_of(owner) == 100
    assert await _request_count(db) == 0


@pytest.mark.asyncio
async def test_missing_or_deleted_card_not_found(db, service, make_user, make_card):
    owner = await make_user()
    requester = await make_user()
    deleted = await make_card(owner, is_deleted=True)

    with pytest.raises(NotFoundError):
        await service.create_exchange_request(db, requester, 4242)
    with pytest.raises(NotFoundError):
        await service.create_exchange_request(db, requester, deleted)
    with pytest.raises(NotFoundError):
        await service.calculate_exchange_price(db, deleted)


@pytest.mark.asyncio
async def test_unknown_requester_not_found(db, service, make_user, make_card):
    owner = await make_user()
    card = await make_card(owner)
    with pytest.raises(NotFoundError):
        await service.create_exchange_request(db, 999, card)


@pytest.mark.asyncio
async def test_insufficient_balance_leaves_no_request(db, service, make_user, make_card, balance_of):
    owner = await make_user()
    requester = await make_user(balance=5)
    card = await make_card(owner, base_price=10)

    with pytest.raises(InsufficientBalanceError):
        await service.create_exchange_request(db, requester, card)

    assert await balance_of(requester) == 5
    assert await _request_count(db) == 0
    assert await db.scalar(select(func.count(CoinTransaction.id))) == 0


@pytest.mark.asyncio
async def test_duplicate_pending_request_conflicts(db, service, make_user, make_card, balance_of):
    owner = await make_user()
    requester = await make_user(balance=100)
    card = await make_card(owner, base_price=10)

    await service.create_exchange_request(db, requester, card)
    with pytest.raises(ConflictError):
        await service.create_exchange_request(db, requester, card)

    assert await balance_of(requester) == 90
    assert await _request_count(db) == 1


@pytest.mark.asyncio
async def test_already_collected_card_conflicts(db, service, make_user, make_card, balance_of):
    owner = await make_user()
    requester = await make_user(balance=100)
    card = await make_card(owner)
    db.add(CardCollection(user_id=requester, card_id=card))
    await db.commit()

    with pytest.raises(ConflictError):
        await service.create_exchange_request(db, requester, card)
    assert await balance_of(requester) == 100


@pytest.mark.asyncio
async def test_overdue_pending_request_is_expired_before_rerequest(
    db, service, make_user, make_card, balance_of, load_request, clock,
):
    owner = await make_user()
    requester = await make_user(balance=100)
    card = await make_card(owner, base_price=10)

    first = await service.create_exchange_request(db, requester, card)
    clock.advance(hours=73)
    second = await service.create_exchange_request(db, requester, card)

    assert (await load_request(first.id)).status == ExchangeStatus.expired
    assert second.status == ExchangeStatus.pending
    assert await balance_of(requester) == 90
    assert await check_exchange_ledger(db, first.id) == []
    assert await check_exchange_ledger(db, second.id) == []
