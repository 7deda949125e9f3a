"""
SCHEDULER JOB DEFINITIONS

Jobs are thin wrappers that:
- Log execution
- Obtain one DB session per item
- Call existing services
- Count succeeded / skipped / failed items and record the run

NO business logic is allowed here. Idempotency is enforced by service
design and storage constraints, so running a job twice is harmless.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from owninstead.domain.services.rule_evaluator import RuleEvaluator
from owninstead.infrastructure.db.repositories.bank_connection_repository import (
    BankConnectionRepository,
)
from owninstead.infrastructure.db.repositories.job_run_repository import JobRunRepository
from owninstead.infrastructure.db.repositories.profile_repository import ProfileRepository
from owninstead.services.evaluation_service import EvaluationService
from owninstead.services.notification_service import Notifier
from owninstead.services.reward_service import RewardRecorder
from owninstead.services.trade_executor import (
    FAILED,
    SKIPPED,
    SUBMITTED as SUCCEEDED,
    BatchResult,
    TradeExecutor,
)
from owninstead.services.transaction_sync_service import TransactionSyncService
from owninstead.utils.time import local_today, now_utc_naive

_logger = logging.getLogger(__name__)

WEEKLY_EVALUATION = "weekly_evaluation"
TRADE_EXECUTION = "trade_execution"
TRANSACTION_SYNC = "transaction_sync"
ORDER_STATUS = "order_status"

JOB_NAMES = (TRANSACTION_SYNC, WEEKLY_EVALUATION, TRADE_EXECUTION, ORDER_STATUS)


class PipelineJobs:
    """
    The recurring batches, each with an "everyone" and a single-target form
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        trade_executor: TradeExecutor,
        sync_service: Optional[TransactionSyncService] = None,
        notifier: Optional[Notifier] = None,
        rewards: Optional[RewardRecorder] = None,
        evaluator: Optional[RuleEvaluator] = None,
        timezone: str = "UTC",
        sync_delay_seconds: float = 0.5,
        clock: Callable[[], datetime] = now_utc_naive,
    ):
        self.session_factory = session_factory
        self.trade_executor = trade_executor
        self.sync_service = sync_service
        self.notifier = notifier
        self.rewards = rewards
        self.evaluator = evaluator or RuleEvaluator()
        self.timezone = timezone
        self.sync_delay_seconds = sync_delay_seconds
        self.clock = clock

    def today(self) -> date:
        return local_today(self.timezone, self.clock())

    async def run(self, job_name: str, target: Optional[str] = None) -> BatchResult:
        """Run a job by name; ``target`` selects the single-item form"""
        handlers: Dict[str, Callable[[Optional[str]], Awaitable[BatchResult]]] = {
            WEEKLY_EVALUATION: self.run_weekly_evaluation,
            TRADE_EXECUTION: self.run_trade_execution,
            TRANSACTION_SYNC: self.run_transaction_sync,
            ORDER_STATUS: self.run_order_status_refresh,
        }
        handler = handlers.get(job_name)
        if handler is None:
            raise ValueError(f"Unknown job: {job_name}")
        return await handler(target)

    # -------------------------------------------------------------------
    # WEEKLY EVALUATION
    # -------------------------------------------------------------------

    async def run_weekly_evaluation(self, user_id: Optional[str] = None) -> BatchResult:
        """
        Evaluate the previous week for one user or every evaluable user.
        """
        _logger.info("📅 Running weekly evaluation job | target=%s", user_id or "all")
        return await self._recorded(WEEKLY_EVALUATION, user_id, self._evaluate_users)

    async def _evaluate_users(self, user_id: Optional[str]) -> BatchResult:
        if user_id is not None:
            user_ids = [user_id]
        else:
            async with self.session_factory() as session:
                user_ids = await ProfileRepository(session).list_evaluable_user_ids()

        today = self.today()
        result = BatchResult()
        for uid in user_ids:
            try:
                async with self.session_factory() as session:
                    service = EvaluationService(
                        session,
                        evaluator=self.evaluator,
                        notifier=self.notifier,
                        rewards=self.rewards,
                    )
                    summary = await service.evaluate_user(uid, today)
                    await session.commit()
            except Exception as exc:
                _logger.exception("Weekly evaluation failed | user=%s", uid)
                result.record(FAILED, f"{uid}: {exc}")
                continue

            if summary.skipped_reason:
                result.record(SKIPPED, f"{uid}: {summary.skipped_reason}")
            elif not summary.created:
                result.record(SKIPPED, f"{uid}: already evaluated")
            else:
                result.record(SUCCEEDED)
        return result

    # -------------------------------------------------------------------
    # TRADE EXECUTION
    # -------------------------------------------------------------------

    async def run_trade_execution(self, evaluation_id: Optional[str] = None) -> BatchResult:
        """
        Execute one confirmed evaluation, or all of them.
        """
        _logger.info("💸 Running trade execution job | target=%s", evaluation_id or "all")
        return await self._recorded(TRADE_EXECUTION, evaluation_id, self._execute_trades)

    async def _execute_trades(self, evaluation_id: Optional[str]) -> BatchResult:
        if evaluation_id is None:
            return await self.trade_executor.execute_all_confirmed()

        result = BatchResult()
        outcome = await self.trade_executor.execute(evaluation_id)
        result.record(outcome.status, outcome.reason)
        return result

    # -------------------------------------------------------------------
    # TRANSACTION SYNC
    # -------------------------------------------------------------------

    async def run_transaction_sync(self, user_id: Optional[str] = None) -> BatchResult:
        """
        Pull bank transactions for one user or every connected user,
        least recently synced first.
        """
        _logger.info("🏦 Running transaction sync job | target=%s", user_id or "all")
        return await self._recorded(TRANSACTION_SYNC, user_id, self._sync_users)

    async def _sync_users(self, user_id: Optional[str]) -> BatchResult:
        result = BatchResult()
        if self.sync_service is None:
            _logger.info("Transaction sync skipped (no bank aggregator configured)")
            result.record(SKIPPED, "no bank aggregator configured")
            return result

        if user_id is not None:
            user_ids: List[str] = [user_id]
        else:
            async with self.session_factory() as session:
                user_ids = await BankConnectionRepository(session).list_user_ids_by_staleness()

        today = self.today()
        for index, uid in enumerate(user_ids):
            if index and self.sync_delay_seconds > 0:
                # Rate limit toward the aggregator
                await asyncio.sleep(self.sync_delay_seconds)
            try:
                sync = await self.sync_service.sync_user(uid, today)
            except Exception as exc:
                _logger.exception("Transaction sync failed | user=%s", uid)
                result.record(FAILED, f"{uid}: {exc}")
                continue

            if sync.failed_connections:
                result.record(FAILED, f"{uid}: {sync.failed_connections} connection(s) failed")
            elif sync.synced_connections:
                result.record(SUCCEEDED)
            else:
                result.record(SKIPPED)
        return result

    # -------------------------------------------------------------------
    # ORDER STATUS REFRESH
    # -------------------------------------------------------------------

    async def run_order_status_refresh(self, target: Optional[str] = None) -> BatchResult:
        """
        Poll the brokerage for submitted orders (no single-target form).
        """
        return await self._recorded(ORDER_STATUS, None, self._refresh_orders)

    async def _refresh_orders(self, _target: Optional[str]) -> BatchResult:
        return await self.trade_executor.refresh_submitted_orders()

    # -------------------------------------------------------------------
    # RUN RECORDING
    # -------------------------------------------------------------------

    async def _recorded(
        self,
        job_name: str,
        target: Optional[str],
        body: Callable[[Optional[str]], Awaitable[BatchResult]],
    ) -> BatchResult:
        async with self.session_factory() as session:
            run_id = await JobRunRepository(session).start(job_name, target)
            await session.commit()

        error = None
        try:
            result = await body(target)
        except Exception as exc:
            _logger.exception("Job %s aborted", job_name)
            error = str(exc)
            result = BatchResult()
            result.record(FAILED, error)

        async with self.session_factory() as session:
            await JobRunRepository(session).finish(
                run_id,
                succeeded=result.succeeded,
                skipped=result.skipped,
                failed=result.failed,
                error=error,
            )
            await session.commit()

        _logger.info(
            "Job %s finished | target=%s | succeeded=%d | skipped=%d | failed=%d",
            job_name,
            target or "all",
            result.succeeded,
            result.skipped,
            result.failed,
        )
        return result
