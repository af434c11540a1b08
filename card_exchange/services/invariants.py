"""Read-only audits of the coin ledger.

Conservation: ``sum(users.coin_balance) + sum(pending coin_amount)`` moves
only through external credits (registration grants, daily rewards), never
through exchange operations.
"""
from typing import List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.models.exchange import ExchangeRequest, ExchangeStatus
from card_exchange.models.ledger import CoinTransaction, CoinReason
from card_exchange.models.user import User

async def escrow_total(db: AsyncSession) -> int:
    total = await db.scalar(
        select(func.coalesce(func.sum(ExchangeRequest.coin_amount), 0))
        .where(ExchangeRequest.status == ExchangeStatus.pending)
    )
    return int(total or 0)

async def balances_total(db: AsyncSession) -> int:
    total = await db.scalar(select(func.coalesce(func.sum(User.coin_balance), 0)))
    return int(total or 0)

async def total_coins(db: AsyncSession) -> int:
    return await balances_total(db) + await escrow_total(db)

async def check_user_ledger(db: AsyncSession, user_id: int) -> List[str]:
    """Return a list of violations for one user's balance and transaction log."""
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        return [f"user {user_id} does not exist"]
    problems = []
    if user.coin_balance < 0:
        problems.append(f"negative balance {user.coin_balance}")

    latest = await db.scalar(
        select(CoinTransaction)
        .where(CoinTransaction.user_id == user_id)
        .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
        .limit(1)
    )
    if latest is not None and latest.balance_after != user.coin_balance:
        problems.append(
            f"latest balance_after {latest.balance_after} != coin_balance {user.coin_balance}"
        )

    summed = await db.scalar(
        select(func.coalesce(func.sum(CoinTransaction.amount), 0))
        .where(CoinTransaction.user_id == user_id)
    )
    expected = user.coin_balance - user.initial_coin_grant
    if int(summed or 0) != expected:
        problems.append(f"transactions sum to {summed}, expected {expected}")
    return problems

async def check_exchange_ledger(db: AsyncSession, exchange_id: int) -> List[str]:
    """A request has one escrow debit, plus exactly one resolving credit once terminal."""
    request = await db.get(ExchangeRequest, exchange_id, populate_existing=True)
    if request is None:
        return [f"exchange {exchange_id} does not exist"]
    rows = list(await db.scalars(
        select(CoinTransaction).where(CoinTransaction.reference_id == exchange_id)
    ))
    problems = []
    debits = [t for t in rows if t.reason == CoinReason.exchange_purchase]
    credits = [t for t in rows if t.reason in (CoinReason.card_exchanged, CoinReason.exchange_refund)]

    if len(debits) != 1 or debits[0].amount != -request.coin_amount or debits[0].user_id != request.requester_id:
        problems.append(f"expected one debit of {request.coin_amount} from user {request.requester_id}")

    if request.status == ExchangeStatus.pending:
        if credits:
            problems.append("pending request already has a resolving credit")
        return problems

    if request.status == ExchangeStatus.accepted:
        reason, recipient = CoinReason.card_exchanged, request.owner_id
    else:
        reason, recipient = CoinReason.exchange_refund, request.requester_id
    if (len(credits) != 1 or credits[0].reason != reason
            or credits[0].user_id != recipient or credits[0].amount != request.coin_amount):
        problems.append(
            f"expected one {reason.value} credit of {request.coin_amount} to user {recipient}"
        )
    return problems
