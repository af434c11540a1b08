"""Card directory, collection store and user directory.

These tables belong to the content side of the product; the exchange flow
only reads cards and writes collection grants and counters through here.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from card_exchange.models.card import Card, CardCollection
from card_exchange.models.user import User

async def get_card(db: AsyncSession, card_id: int) -> Optional[Card]:
    """Return the card, or ``None`` if it does not exist or was soft-deleted."""
    return await db.scalar(
        select(Card).where(Card.id == card_id, Card.is_deleted == False)  # noqa: E712
    )

async def increment_exchange_count(db: AsyncSession, card_id: int) -> None:
    await db.execute(
        update(Card)
        .where(Card.id == card_id)
        .values(exchange_count=Card.exchange_count + 1)
        .execution_options(synchronize_session=False)
    )

async def has_collected(db: AsyncSession, user_id: int, card_id: int) -> bool:
    count = await db.scalar(
        select(func.count(CardCollection.id)).where(
            CardCollection.user_id == user_id,
            CardCollection.card_id == card_id,
        )
    )
    return bool(count)

async def grant_collection(db: AsyncSession, user_id: int, card_id: int, collected_at: Optional[datetime] = None) -> bool:
    """Add the card to the user's collection. Returns ``False`` if it was already there."""
    if await has_collected(db, user_id, card_id):
        return False
    entry = CardCollection(user_id=user_id, card_id=card_id)
    if collected_at is not None:
        entry.collected_at = collected_at
    db.add(entry)
    await db.flush()
    return True

async def user_exists(db: AsyncSession, user_id: int) -> bool:
    count = await db.scalar(select(func.count(User.id)).where(User.id == user_id))
    return bool(count)

async def increment_user_exchange_count(db: AsyncSession, *user_ids: int) -> None:
    await db.execute(
        update(User)
        .where(User.id.in_(user_ids))
        .values(exchange_count=User.exchange_count + 1)
        .execution_options(synchronize_session=False)
    )
