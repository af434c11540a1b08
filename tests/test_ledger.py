import pytest
from sqlalchemy import select
from card_exchange.core.errors import InsufficientBalanceError, InvalidAmountError, NotFoundError
from card_exchange.models.ledger import CoinTransaction, CoinReason
from card_exchange.schemas.common import Pagination
from card_exchange.services.invariants import check_user_ledger


@pytest.mark.asyncio
async def test_open_account_holds_initial_grant(db, ledger, test_settings):
    user = await ledger.open_account(db)
    await db.commit()
    assert user.coin_balance == test_settings.DEFAULT_COIN_BALANCE
    assert user.initial_coin_grant == test_settings.DEFAULT_COIN_BALANCE
    assert await check_user_ledger(db, user.id) == []


@pytest.mark.asyncio
async def test_add_coins_logs_balance_after(db, ledger, make_user):
    user_id = await make_user(balance=100)
    new_balance = await ledger.add_coins(db, user_id, 15, CoinReason.card_created, reference_id=7)
    await db.commit()

    assert new_balance == 115
    txn = await db.scalar(select(CoinTransaction).where(CoinTransaction.user_id == user_id))
    assert txn.amount == 15
    assert txn.balance_after == 115
    assert txn.reason == CoinReason.card_created
    assert txn.reference_id == 7


@pytest.mark.asyncio
async def test_deduct_coins_records_negative_amount(db, ledger, make_user):
    user_id = await make_user(balance=100)
    new_balance = await ledger.deduct_coins(db, user_id, 30, CoinReason.exchange_purchase)
    await db.commit()

    assert new_balance == 70
    txn = await db.scalar(select(CoinTransaction).where(CoinTransaction.user_id == user_id))
    assert txn.amount == -30
    assert txn.balance_after == 70
    assert await check_user_ledger(db, user_id) == []


@pytest.mark.asyncio
async def test_deduct_more_than_balance_changes_nothing(db, ledger, make_user, balance_of):
    user_id = await make_user(balance=10)
    with pytest.raises(InsufficientBalanceError):
        await ledger.deduct_coins(db, user_id, 11, CoinReason.exchange_purchase)
    await db.rollback()

    assert await balance_of(user_id) == 10
    count = len(list(await db.scalars(select(CoinTransaction).where(CoinTransaction.user_id == user_id))))
    assert count == 0


@pytest.mark.asyncio
async def test_deduct_exact_balance_reaches_zero(db, ledger, make_user):
    user_id = await make_user(balance=20)
    assert await ledger.deduct_coins(db, user_id, 20, CoinReason.exchange_purchase) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5])
async def test_non_positive_amounts_rejected(db, ledger, make_user, amount):
    user_id = await make_user()
    with pytest.raises(InvalidAmountError):
        await ledger.add_coins(db, user_id, amount, CoinReason.card_created)
    with pytest.raises(InvalidAmountError):
        await ledger.deduct_coins(db, user_id, amount, CoinReason.exchange_purchase)


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(db, ledger):
    with pytest.raises(NotFoundError):
        await ledger.add_coins(db, 999, 5, CoinReason.card_created)
    with pytest.raises(NotFoundError):
        await ledger.get_balance(db, 999)


@pytest.mark.asyncio
async def test_daily_login_paid_once_per_day(db, ledger, make_user, clock):
    user_id = await make_user(balance=100)

    assert await ledger.grant_daily_login(db, user_id) == 105
    await db.commit()
    assert await ledger.grant_daily_login(db, user_id) is None
    await db.commit()

    clock.advance(days=1)
    assert await ledger.grant_daily_login(db, user_id) == 110
    await db.commit()
    assert await check_user_ledger(db, user_id) == []


@pytest.mark.asyncio
async def test_coin_history_is_paginated_newest_first(db, ledger, make_user, clock):
    user_id = await make_user(balance=0)
    for amount in (1, 2, 3, 4, 5):
        clock.advance(minutes=1)
        await ledger.add_coins(db, user_id, amount, CoinReason.card_created)
    await db.commit()

    first, total = await ledger.get_coin_history(db, user_id, Pagination(page=1, page_size=2))
    assert total == 5
    assert [t.amount for t in first] == [5, 4]

    last, _ = await ledger.get_coin_history(db, user_id, Pagination(page=3, page_size=2))
    assert [t.amount for t in last] == [1]


@pytest.mark.asyncio
async def test_pagination_is_clamped():
    pagination = Pagination(page=0, page_size=1000)
    assert pagination.page == 1
    assert pagination.page_size == 100
    assert pagination.offset == 0
    assert pagination.has_more(150) is True
    assert pagination.has_more(100) is False


@pytest.mark.asyncio
async def test_lock_users_returns_rows_in_id_order(db, ledger, make_user):
    first = await make_user()
    second = await make_user()

    users = await ledger.lock_users(db, second, first, second)
    assert [u.id for u in users] == [first, second]

    with pytest.raises(NotFoundError):
        await ledger.lock_users(db, first, 999)
