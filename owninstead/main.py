"""
FastAPI Main Application with Scheduler
Wires the weekly pipeline: sync, evaluate, execute, refresh order status
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from owninstead.api.routes import evaluations, health, orders, rules, transactions, triggers
from owninstead.config import settings
from owninstead.core.logging import setup_logging
from owninstead.infrastructure.banking.plaid import PlaidAggregator
from owninstead.infrastructure.brokerage.factory import get_brokerage_client
from owninstead.infrastructure.db.database import close_db, get_session_factory, init_db
from owninstead.scheduler.dispatch import JobDispatcher, JobQueue, JobWorker
from owninstead.scheduler.jobs import PipelineJobs
from owninstead.scheduler.scheduler import PipelineScheduler
from owninstead.services.notification_service import LoggingNotifier, PushNotificationService
from owninstead.services.reward_service import LoggingRewardRecorder
from owninstead.services.trade_executor import TradeExecutor
from owninstead.services.transaction_sync_service import TransactionSyncService

logger = logging.getLogger(__name__)


def _build_notifier(session_factory):
    if settings.PUSH_ENABLED:
        logger.info("📲 Push notifications enabled")
        return PushNotificationService(session_factory, settings.EXPO_PUSH_URL)
    logger.info("📲 Push notifications disabled; logging instead")
    return LoggingNotifier()


def _build_sync_service(session_factory) -> Optional[TransactionSyncService]:
    if not (settings.PLAID_CLIENT_ID and settings.PLAID_SECRET):
        logger.info("🏦 Plaid credentials not set; transaction sync disabled")
        return None
    aggregator = PlaidAggregator(
        settings.PLAID_CLIENT_ID,
        settings.PLAID_SECRET,
        environment=settings.PLAID_ENV,
    )
    return TransactionSyncService(
        session_factory,
        aggregator,
        lookback_days=settings.SYNC_LOOKBACK_DAYS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of all services
    """
    setup_logging(settings.LOG_LEVEL)

    # ===================
    # STARTUP
    # ===================
    logger.info("=" * 60)
    logger.info("🚀 Starting OwnInstead")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    session_factory = get_session_factory()
    notifier = _build_notifier(session_factory)
    rewards = LoggingRewardRecorder()

    trade_executor = TradeExecutor(
        session_factory,
        get_brokerage_client(),
        notifier=notifier,
        rewards=rewards,
        default_asset=settings.DEFAULT_ASSET,
    )
    jobs = PipelineJobs(
        session_factory,
        trade_executor,
        sync_service=_build_sync_service(session_factory),
        notifier=notifier,
        rewards=rewards,
        timezone=settings.TIMEZONE,
        sync_delay_seconds=settings.SYNC_DELAY_SECONDS,
    )

    worker: Optional[JobWorker] = None
    queue: Optional[JobQueue] = None
    if settings.JOB_QUEUE_ENABLED:
        queue = JobQueue()
        worker = JobWorker(queue, JobDispatcher(jobs).handle)
        worker.start()
        logger.info("📬 Job queue worker started")
    app.state.dispatcher = JobDispatcher(jobs, queue=queue)

    scheduler: Optional[PipelineScheduler] = None
    catch_up_task: Optional[asyncio.Task] = None
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = PipelineScheduler(jobs, session_factory, timezone=settings.TIMEZONE)
            scheduler.start()
            app.state.scheduler = scheduler
            if settings.SCHEDULER_CATCH_UP:
                catch_up_task = asyncio.create_task(scheduler.catch_up())
        except Exception as e:
            logger.error(f"❌ Failed to start scheduler: {e}")
    else:
        logger.info("⏰ Scheduler disabled")

    logger.info(f"🎯 API Server: http://{settings.API_HOST}:{settings.API_PORT}")

    yield

    # ===================
    # SHUTDOWN
    # ===================
    logger.info("🛑 Shutting down OwnInstead...")

    if scheduler:
        scheduler.stop()

    if catch_up_task and not catch_up_task.done():
        catch_up_task.cancel()
        try:
            await catch_up_task
        except asyncio.CancelledError:
            logger.info("⏩ Catch-up cancelled")

    if scheduler:
        await scheduler.drain()

    if worker:
        await worker.stop()

    await close_db()
    logger.info("👋 OwnInstead shutdown complete")


app = FastAPI(
    title="OwnInstead",
    description="Spend less than your target, invest the difference",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["Health"])
app.include_router(rules.router, prefix="/api/v1/rules", tags=["Rules"])
app.include_router(evaluations.router, prefix="/api/v1/evaluations", tags=["Evaluations"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["Transactions"])
app.include_router(triggers.router, prefix="/api/v1/triggers", tags=["Triggers"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("owninstead.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
