"""Periodic sweep that expires overdue exchange requests and refunds escrow.

Accept/reject/cancel already expire stale requests lazily; the sweep exists
so escrowed coins come back even when nobody touches the request again.
"""
import logging
from typing import List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from card_exchange.config import Settings, settings as default_settings
from card_exchange.core.clock import Clock, utcnow
from card_exchange.core.errors import ExchangeError
from card_exchange.database import AsyncSessionLocal
from card_exchange.models.exchange import ExchangeRequest, ExchangeStatus
from card_exchange.schemas.exchange import SweepSummary
from card_exchange.services.exchange import ExchangeService

logger = logging.getLogger(__name__)

JOB_ID = "exchange_expiration_sweep"


class ExpirationReaper:

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal,
                 service: Optional[ExchangeService] = None,
                 settings: Settings = default_settings, clock: Clock = utcnow):
        self.settings = settings
        self._session_factory = session_factory
        self._clock = clock
        self.service = service or ExchangeService(settings=settings, clock=clock)

    async def _find_overdue(self) -> List[int]:
        async with self._session_factory() as db:
            ids = await db.scalars(
                select(ExchangeRequest.id)
                .where(
                    ExchangeRequest.status == ExchangeStatus.pending,
                    ExchangeRequest.expires_at < self._clock(),
                )
                .order_by(ExchangeRequest.expires_at)
                .with_for_update(skip_locked=True)
            )
            overdue = list(ids)
            # release the selection locks before expiring row by row
            await db.rollback()
        return overdue

    async def run_sweep(self) -> SweepSummary:
        """Expire every overdue pending request, each in its own transaction."""
        overdue = await self._find_overdue()
        summary = SweepSummary(total_found=len(overdue))

        for exchange_id in overdue:
            try:
                async with self._session_factory() as db:
                    refunded = await self.service.expire_exchange(db, exchange_id, skip_locked=True)
            except ExchangeError as e:
                summary.failed_count += 1
                logger.warning("Could not expire exchange %s: %s", exchange_id, e)
                continue
            except Exception:
                summary.failed_count += 1
                logger.exception("Unexpected error expiring exchange %s", exchange_id)
                continue
            summary.processed_count += 1
            summary.total_refunded_amount += refunded

        if summary.has_processed:
            logger.info(
                "Processed expired exchange requests: found=%s processed=%s failed=%s refunded=%s",
                summary.total_found, summary.processed_count,
                summary.failed_count, summary.total_refunded_amount,
            )
        elif summary.total_found:
            logger.warning("Found %s expired requests but none were processed", summary.total_found)
        else:
            logger.debug("No expired exchange requests found")
        return summary

    def schedule(self, scheduler: AsyncIOScheduler):
        """Register the sweep as an interval job; shutting the scheduler down stops it."""
        return scheduler.add_job(
            self.run_sweep,
            "interval",
            seconds=self.settings.REAPER_INTERVAL_SECONDS,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
