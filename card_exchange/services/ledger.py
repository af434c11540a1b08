import logging
from datetime import datetime, time
from typing import List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.config import Settings, settings as default_settings
from card_exchange.core.clock import Clock, utcnow
from card_exchange.core.errors import NotFoundError, InsufficientBalanceError, InvalidAmountError
from card_exchange.models.ledger import CoinTransaction, CoinReason
from card_exchange.models.user import User
from card_exchange.schemas.common import Pagination

logger = logging.getLogger(__name__)


class CoinLedger:
    """Sole writer of ``User.coin_balance`` and the coin transaction log.

    Every mutation locks the user row, updates the balance and appends a
    ``CoinTransaction`` whose ``balance_after`` is the new balance. Nothing
    here commits: the caller's transaction is the unit of atomicity, so a
    debit and whatever it pays for land together or not at all.
    """

    def __init__(self, settings: Settings = default_settings, clock: Clock = utcnow):
        self.settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def open_account(self, db: AsyncSession, nickname: Optional[str] = None,
                           initial_grant: Optional[int] = None) -> User:
        """Create a user holding the registration grant."""
        grant = self.settings.DEFAULT_COIN_BALANCE if initial_grant is None else initial_grant
        if grant < 0:
            raise InvalidAmountError("Initial grant cannot be negative")
        now = self._clock()
        user = User(
            nickname=nickname,
            coin_balance=grant,
            initial_coin_grant=grant,
            exchange_count=0,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        await db.flush()
        return user

    async def get_balance(self, db: AsyncSession, user_id: int) -> int:
        balance = await db.scalar(select(User.coin_balance).where(User.id == user_id))
        if balance is None:
            raise NotFoundError(f"User {user_id} not found")
        return balance

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _lock_user(self, db: AsyncSession, user_id: int) -> User:
        user = await db.scalar(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def lock_users(self, db: AsyncSession, *user_ids: int) -> List[User]:
        """Lock several user rows at once, always in ascending id order."""
        wanted = sorted(set(user_ids))
        users = list(await db.scalars(
            select(User)
            .where(User.id.in_(wanted))
            .order_by(User.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ))
        if len(users) != len(wanted):
            found = {u.id for u in users}
            missing = [i for i in wanted if i not in found]
            raise NotFoundError(f"User {missing[0]} not found")
        return users

    async def _append(self, db: AsyncSession, user: User, amount: int, reason: CoinReason,
                      reference_id: Optional[int]) -> int:
        now = self._clock()
        user.coin_balance = user.coin_balance + amount
        user.updated_at = now
        db.add(CoinTransaction(
            user_id=user.id,
            amount=amount,
            reason=reason,
            reference_id=reference_id,
            balance_after=user.coin_balance,
            created_at=now,
        ))
        await db.flush()
        logger.debug("Ledger %s user=%s amount=%+d balance=%s ref=%s",
                     reason.value, user.id, amount, user.coin_balance, reference_id)
        return user.coin_balance

    async def add_coins(self, db: AsyncSession, user_id: int, amount: int, reason: CoinReason,
                        reference_id: Optional[int] = None) -> int:
        if amount <= 0:
            raise InvalidAmountError(f"Amount must be positive, got {amount}")
        user = await self._lock_user(db, user_id)
        return await self._append(db, user, amount, reason, reference_id)

    async def deduct_coins(self, db: AsyncSession, user_id: int, amount: int, reason: CoinReason,
                           reference_id: Optional[int] = None) -> int:
        if amount <= 0:
            raise InvalidAmountError(f"Amount must be positive, got {amount}")
        user = await self._lock_user(db, user_id)
        if user.coin_balance < amount:
            raise InsufficientBalanceError(
                f"Insufficient coin balance. Required: {amount}, Available: {user.coin_balance}"
            )
        return await self._append(db, user, -amount, reason, reference_id)

    async def grant_daily_login(self, db: AsyncSession, user_id: int) -> Optional[int]:
        """Credit the daily login reward once per UTC day.

        Returns the new balance, or ``None`` if today's reward was already paid.
        """
        user = await self._lock_user(db, user_id)
        start_of_day = datetime.combine(self._clock().date(), time.min)
        already = await db.scalar(
            select(func.count(CoinTransaction.id)).where(
                CoinTransaction.user_id == user_id,
                CoinTransaction.reason == CoinReason.daily_login,
                CoinTransaction.created_at >= start_of_day,
            )
        )
        if already:
            return None
        return await self._append(db, user, self.settings.DAILY_LOGIN_REWARD, CoinReason.daily_login, None)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_coin_history(self, db: AsyncSession, user_id: int,
                               pagination: Pagination) -> Tuple[List[CoinTransaction], int]:
        """Return one page of the user's transactions, newest first, and the total count."""
        await self.get_balance(db, user_id)
        total = await db.scalar(
            select(func.count(CoinTransaction.id)).where(CoinTransaction.user_id == user_id)
        )
        rows = await db.scalars(
            select(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
            .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(rows), total or 0
