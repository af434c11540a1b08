from contextlib import asynccontextmanager
from fastapi import FastAPI
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from card_exchange.config import settings
from card_exchange.core.errors import ExchangeError, exchange_error_handler
from card_exchange.core.logging import setup_logging
from card_exchange.routers import exchanges, wallet
from card_exchange.services.exchange import ExchangeService
from card_exchange.tasks.exchange_expiration import ExpirationReaper

setup_logging(settings.LOG_LEVEL)

exchange_service = ExchangeService(settings=settings)
reaper = ExpirationReaper(service=exchange_service, settings=settings)
scheduler = AsyncIOScheduler()

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.REAPER_ENABLED:
        reaper.schedule(scheduler)
        scheduler.start()
    yield
    if scheduler.running:
        scheduler.shutdown(wait=False)

app = FastAPI(title="Card Exchange API", lifespan=lifespan)
app.state.exchange_service = exchange_service
app.add_exception_handler(ExchangeError, exchange_error_handler)

app.include_router(exchanges.router)
app.include_router(wallet.router)

@app.get("/health")
async def health():
    return {"status": "ok"}
