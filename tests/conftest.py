import os

os.environ.setdefault("REAPER_ENABLED", "false")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from card_exchange.config import Settings
from card_exchange.database import Base
import card_exchange.models  # noqa: F401
from card_exchange.models.card import Card
from card_exchange.models.exchange import ExchangeRequest
from card_exchange.services.exchange import ExchangeService
from card_exchange.services.ledger import CoinLedger


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        EXCHANGE_EXPIRATION_HOURS=72,
        REAPER_INTERVAL_SECONDS=300,
        DEFAULT_COIN_BALANCE=100,
        DAILY_LOGIN_REWARD=5,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    # file-backed so concurrent sessions get their own connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'exchange.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(test_settings, clock):
    return CoinLedger(settings=test_settings, clock=clock)


@pytest.fixture
def service(ledger, test_settings, clock):
    return ExchangeService(ledger=ledger, settings=test_settings, clock=clock)


@pytest.fixture
def make_user(session_factory, ledger):
    async def _make(balance: int = 100, nickname: str = None) -> int:
        async with session_factory() as session:
            user = await ledger.open_account(session, nickname=nickname, initial_grant=balance)
            await session.commit()
            return user.id
    return _make


@pytest.fixture
def make_card(session_factory):
    async def _make(owner_id: int, base_price: int = 10, like_count: int = 0,
                    exchange_count: int = 0, is_deleted: bool = False) -> int:
        async with session_factory() as session:
            card = Card(
                owner_id=owner_id,
                title="Sunrise over the harbour",
                base_price=base_price,
                like_count=like_count,
                exchange_count=exchange_count,
                is_deleted=is_deleted,
            )
            session.add(card)
            await session.commit()
            return card.id
    return _make


@pytest.fixture
def balance_of(session_factory, ledger):
    async def _balance(user_id: int) -> int:
        async with session_factory() as session:
            return await ledger.get_balance(session, user_id)
    return _balance


@pytest.fixture
def load_request(session_factory):
    async def _load(exchange_id: int) -> ExchangeRequest:
        async with session_factory() as session:
            return await session.scalar(select(ExchangeRequest).where(ExchangeRequest.id == exchange_id))
    return _load
