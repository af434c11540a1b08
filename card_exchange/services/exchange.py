"""Exchange request state machine.

A request is created ``pending`` with its price held in escrow, then resolved
exactly once: ``accepted`` pays the owner and grants the card, while
``rejected``, ``cancelled`` and ``expired`` refund the requester.

Resolution always goes through ``_transition``: a conditional
``UPDATE ... WHERE status = 'pending'`` on a row already locked with
``SELECT ... FOR UPDATE``. Ledger effects run only after that update hit a
row, so the loser of any race sees ``InvalidStateError`` and moves no coins.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.config import Settings, settings as default_settings
from card_exchange.core.clock import Clock, utcnow
from card_exchange.core.errors import (
    ExchangeError, NotFoundError, ForbiddenError, InvalidStateError, ExchangeExpiredError,
    ExchangeBusyError, ConflictError, InvalidOperationError, InvalidAmountError, InternalError,
)
from card_exchange.models.exchange import ExchangeRequest, ExchangeRecord, ExchangeStatus
from card_exchange.models.ledger import CoinReason
from card_exchange.schemas.common import Pagination
from card_exchange.schemas.exchange import ExchangePrice, ExchangeResult
from card_exchange.services import cards
from card_exchange.services.ledger import CoinLedger
from card_exchange.services.pricing import calculate_price

logger = logging.getLogger(__name__)

_PARTY_LABELS = {"owner_id": "card owner", "requester_id": "requester"}


class ExchangeService:

    def __init__(self, ledger: Optional[CoinLedger] = None, settings: Settings = default_settings,
                 clock: Clock = utcnow):
        self.settings = settings
        self._clock = clock
        self.ledger = ledger or CoinLedger(settings=settings, clock=clock)

    @property
    def expiration_window(self) -> timedelta:
        return timedelta(hours=self.settings.EXCHANGE_EXPIRATION_HOURS)

    @asynccontextmanager
    async def _transaction(self, db: AsyncSession, action: str):
        """Commit on success; roll back everything on any failure."""
        try:
            yield
            await db.commit()
        except ExchangeError:
            await db.rollback()
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Store failure during exchange %s", action)
            raise InternalError(f"Store failure during exchange {action}") from exc

    # ------------------------------------------------------------------
    # Row access and the guarded transition
    # ------------------------------------------------------------------

    async def _load_for_update(self, db: AsyncSession, exchange_id: int,
                               skip_locked: bool = False) -> Optional[ExchangeRequest]:
        return await db.scalar(
            select(ExchangeRequest)
            .where(ExchangeRequest.id == exchange_id)
            .with_for_update(skip_locked=skip_locked)
            .execution_options(populate_existing=True)
        )

    async def _transition(self, db: AsyncSession, request: ExchangeRequest,
                          status: ExchangeStatus, now: datetime) -> None:
        result = await db.execute(
            update(ExchangeRequest)
            .where(
                ExchangeRequest.id == request.id,
                ExchangeRequest.status == ExchangeStatus.pending,
            )
            .values(status=status, updated_at=now)
        )
        if result.rowcount != 1:
            raise InvalidStateError(f"Exchange request {request.id} is no longer pending")

    async def _refund(self, db: AsyncSession, request: ExchangeRequest,
                      status: ExchangeStatus, now: datetime) -> int:
        """Resolve to a refunding terminal status and return escrow to the requester."""
        await self._transition(db, request, status, now)
        await self.ledger.add_coins(
            db, request.requester_id, request.coin_amount, CoinReason.exchange_refund, request.id
        )
        return request.coin_amount

    async def _load_pending_for(self, db: AsyncSession, exchange_id: int, actor_id: int,
                                party: str, action: str) -> ExchangeRequest:
        """Lock a request the actor may resolve, expiring it first if it is overdue.

        An overdue request is expired and refunded in its own commit before
        ``ExchangeExpiredError`` is raised, so the refund is final.
        """
        request = await self._load_for_update(db, exchange_id)
        if request is None:
            raise NotFoundError("Exchange request not found")
        if getattr(request, party) != actor_id:
            raise ForbiddenError(f"Only the {_PARTY_LABELS[party]} can {action} this exchange request")
        if request.status != ExchangeStatus.pending:
            raise InvalidStateError(
                f"Cannot {action} exchange request with status: {request.status.value}"
            )
        now = self._clock()
        if request.is_expired(now):
            refunded = await self._refund(db, request, ExchangeStatus.expired, now)
            await db.commit()
            logger.info("Exchange %s expired on %s attempt; refunded %s coins to user %s",
                        request.id, action, refunded, request.requester_id)
            raise ExchangeExpiredError(
                "Exchange request has expired; the escrowed coins were refunded to the requester"
            )
        return request

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def calculate_exchange_price(self, db: AsyncSession, card_id: int) -> ExchangePrice:
        card = await cards.get_card(db, card_id)
        if card is None:
            raise NotFoundError("Card not found")
        return calculate_price(card.base_price, card.like_count, card.exchange_count)

    async def create_exchange_request(self, db: AsyncSession, requester_id: int,
                                      card_id: int) -> ExchangeRequest:
        """Escrow the card's current price from the requester and open a pending request."""
        async with self._transaction(db, "create"):
            card = await cards.get_card(db, card_id)
            if card is None:
                raise NotFoundError("Card not found")
            if not await cards.user_exists(db, requester_id):
                raise NotFoundError("User not found")
            if card.owner_id == requester_id:
                raise InvalidOperationError("Cannot exchange your own card")

            now = self._clock()
            existing = await db.scalars(
                select(ExchangeRequest)
                .where(
                    ExchangeRequest.requester_id == requester_id,
                    ExchangeRequest.card_id == card_id,
                    ExchangeRequest.status == ExchangeStatus.pending,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            for stale in list(existing):
                if not stale.is_expired(now):
                    raise ConflictError("You already have a pending exchange request for this card")
                await self._refund(db, stale, ExchangeStatus.expired, now)
                logger.info("Expired stale exchange %s before re-request", stale.id)

            if await cards.has_collected(db, requester_id, card_id):
                raise ConflictError("You have already collected this card")

            price = calculate_price(card.base_price, card.like_count, card.exchange_count)
            if price.final_price <= 0:
                raise InvalidAmountError("Card has no exchange price")

            request = ExchangeRequest(
                requester_id=requester_id,
                card_id=card_id,
                owner_id=card.owner_id,
                coin_amount=price.final_price,
                status=ExchangeStatus.pending,
                expires_at=now + self.expiration_window,
                created_at=now,
                updated_at=now,
            )
            db.add(request)
            await db.flush()
            await self.ledger.deduct_coins(
                db, requester_id, price.final_price, CoinReason.exchange_purchase, request.id
            )

        logger.info("Exchange %s created: user %s -> card %s for %s coins",
                    request.id, requester_id, card_id, request.coin_amount)
        return request

    async def accept_exchange(self, db: AsyncSession, exchange_id: int, owner_id: int) -> ExchangeResult:
        async with self._transaction(db, "accept"):
            request = await self._load_pending_for(db, exchange_id, owner_id, "owner_id", "accept")
            now = self._clock()
            await self._transition(db, request, ExchangeStatus.accepted, now)

            # both parties' rows are written below; take them in id order up front
            await self.ledger.lock_users(db, request.owner_id, request.requester_id)
            owner_balance = await self.ledger.add_coins(
                db, request.owner_id, request.coin_amount, CoinReason.card_exchanged, request.id
            )
            await cards.grant_collection(db, request.requester_id, request.card_id, now)
            await cards.increment_exchange_count(db, request.card_id)
            await cards.increment_user_exchange_count(db, request.owner_id, request.requester_id)
            db.add(ExchangeRecord(
                exchange_request_id=request.id,
                card_id=request.card_id,
                from_user_id=request.owner_id,
                to_user_id=request.requester_id,
                coin_amount=request.coin_amount,
                completed_at=now,
            ))
            # escrow was taken at creation, so this is unchanged by the accept
            requester_balance = await self.ledger.get_balance(db, request.requester_id)

        logger.info("Exchange %s accepted: %s coins to owner %s, card %s to user %s",
                    request.id, request.coin_amount, request.owner_id, request.card_id, request.requester_id)
        return ExchangeResult(
            exchange_id=request.id,
            card_id=request.card_id,
            requester_new_balance=requester_balance,
            owner_new_balance=owner_balance,
        )

    async def reject_exchange(self, db: AsyncSession, exchange_id: int, owner_id: int) -> None:
        async with self._transaction(db, "reject"):
            request = await self._load_pending_for(db, exchange_id, owner_id, "owner_id", "reject")
            await self._refund(db, request, ExchangeStatus.rejected, self._clock())
        logger.info("Exchange %s rejected; refunded %s coins to user %s",
                    exchange_id, request.coin_amount, request.requester_id)

    async def cancel_exchange(self, db: AsyncSession, exchange_id: int, requester_id: int) -> None:
        async with self._transaction(db, "cancel"):
            request = await self._load_pending_for(db, exchange_id, requester_id, "requester_id", "cancel")
            await self._refund(db, request, ExchangeStatus.cancelled, self._clock())
        logger.info("Exchange %s cancelled; refunded %s coins to user %s",
                    exchange_id, request.coin_amount, request.requester_id)

    async def expire_exchange(self, db: AsyncSession, exchange_id: int, skip_locked: bool = False) -> int:
        """Force an overdue pending request to ``expired`` and refund it.

        System-invoked, so there is no caller check. With ``skip_locked`` a
        row held by a concurrent resolver raises ``ExchangeBusyError``
        instead of waiting for it. Returns the refunded amount.
        """
        async with self._transaction(db, "expire"):
            request = await self._load_for_update(db, exchange_id, skip_locked=skip_locked)
            if request is None:
                exists = await db.scalar(
                    select(func.count(ExchangeRequest.id)).where(ExchangeRequest.id == exchange_id)
                )
                if skip_locked and exists:
                    raise ExchangeBusyError(f"Exchange request {exchange_id} is being resolved")
                raise NotFoundError("Exchange request not found")
            if request.status != ExchangeStatus.pending:
                raise InvalidStateError(
                    f"Cannot expire exchange request with status: {request.status.value}"
                )
            now = self._clock()
            if not request.is_expired(now):
                raise InvalidStateError("Exchange request has not expired yet")
            refunded = await self._refund(db, request, ExchangeStatus.expired, now)
        return refunded

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_exchange_request(self, db: AsyncSession, exchange_id: int) -> ExchangeRequest:
        request = await db.get(ExchangeRequest, exchange_id)
        if request is None:
            raise NotFoundError("Exchange request not found")
        return request

    async def get_pending_requests(self, db: AsyncSession, owner_id: int) -> List[ExchangeRequest]:
        """Requests the owner can still act on."""
        rows = await db.scalars(
            select(ExchangeRequest)
            .where(
                ExchangeRequest.owner_id == owner_id,
                ExchangeRequest.status == ExchangeStatus.pending,
                ExchangeRequest.expires_at > self._clock(),
            )
            .order_by(ExchangeRequest.created_at.desc(), ExchangeRequest.id.desc())
        )
        return list(rows)

    async def get_sent_requests(self, db: AsyncSession, requester_id: int) -> List[ExchangeRequest]:
        rows = await db.scalars(
            select(ExchangeRequest)
            .where(ExchangeRequest.requester_id == requester_id)
            .order_by(ExchangeRequest.created_at.desc(), ExchangeRequest.id.desc())
        )
        return list(rows)

    async def get_exchange_history(self, db: AsyncSession, user_id: int,
                                   pagination: Pagination) -> Tuple[List[ExchangeRecord], int]:
        involves_user = or_(ExchangeRecord.from_user_id == user_id, ExchangeRecord.to_user_id == user_id)
        total = await db.scalar(select(func.count(ExchangeRecord.id)).where(involves_user))
        rows = await db.scalars(
            select(ExchangeRecord)
            .where(involves_user)
            .order_by(ExchangeRecord.completed_at.desc(), ExchangeRecord.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        return list(rows), total or 0
