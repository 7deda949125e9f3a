"""
TRADE EXECUTOR

Turns a confirmed evaluation into exactly one brokerage market buy.

RESPONSIBILITIES:
- Record a pending Order BEFORE calling the brokerage
- Size the order from a live quote (fractional if notional supported, else whole units)
- Submit, then move the order to submitted / failed
- Compare-and-swap the evaluation confirmed -> executed
- Poll submitted orders until the brokerage reports a fill

RULES:
❌ Never place a second order while a non-failed order exists for the evaluation
❌ Never call the brokerage when sizing yields zero units
❌ A failed attempt never regresses the evaluation (stays confirmed, retriable)
✅ Every attempt is observable as an Order row, even if the brokerage never answers
✅ One session per evaluation; one item's failure never aborts a batch
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_FLOOR
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from owninstead.domain.constants import DEFAULT_ASSET
from owninstead.domain.errors import BrokerageError, OrderTooSmallError
from owninstead.domain.models import EvaluationStatus, Order
from owninstead.infrastructure.brokerage.types import BrokerageClient, BrokerageOrderState
from owninstead.infrastructure.db.repositories.evaluation_repository import EvaluationRepository
from owninstead.infrastructure.db.repositories.order_repository import OrderRepository
from owninstead.infrastructure.db.repositories.profile_repository import ProfileRepository
from owninstead.services import notification_service as notifications
from owninstead.services.notification_service import Notifier
from owninstead.services.reward_service import RewardRecorder
from owninstead.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

_UNIT_STEP = Decimal("0.000001")

SUBMITTED = "submitted"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(frozen=True)
class ExecutionOutcome:
    evaluation_id: str
    status: str
    order_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class BatchResult:
    """Per-item counters for one batch run"""
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    messages: List[str] = field(default_factory=list)

    def record(self, status: str, message: Optional[str] = None) -> None:
        if status == SUBMITTED:
            self.succeeded += 1
        elif status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
        if message:
            self.messages.append(message)

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed


def size_order(amount: Decimal, price: Optional[Decimal], notional: bool) -> Decimal:
    """
    Units to buy for a dollar amount

    Raises:
        BrokerageError: Missing or non-positive quote
        OrderTooSmallError: Amount buys less than the minimum unit
    """
    if price is None or price <= 0:
        raise BrokerageError("No valid quote available")

    if notional:
        units = (amount / price).quantize(_UNIT_STEP, rounding=ROUND_DOWN)
    else:
        units = (amount / price).to_integral_value(rounding=ROUND_FLOOR)

    if units <= 0:
        raise OrderTooSmallError(amount, price)
    return units


class TradeExecutor:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        brokerage: BrokerageClient,
        notifier: Optional[Notifier] = None,
        rewards: Optional[RewardRecorder] = None,
        default_asset: str = DEFAULT_ASSET,
    ):
        self.session_factory = session_factory
        self.brokerage = brokerage
        self.notifier = notifier
        self.rewards = rewards
        self.default_asset = default_asset

    async def execute(self, evaluation_id: str) -> ExecutionOutcome:
        """
        Place the trade for one confirmed evaluation

        Not-confirmed, already-ordered or unknown evaluations are a logged
        no-op. Brokerage failures mark the order failed and are reported in
        the outcome, never raised.
        """
        async with self.session_factory() as session:
            evaluations = EvaluationRepository(session)
            orders = OrderRepository(session)

            evaluation = await evaluations.get(evaluation_id)
            if evaluation is None:
                return self._skip(evaluation_id, "not found")
            if evaluation.status != EvaluationStatus.CONFIRMED:
                return self._skip(evaluation_id, f"status is {evaluation.status.value}")
            if evaluation.final_invest <= 0:
                return self._skip(evaluation_id, "nothing to invest")

            existing = await orders.get_active_for_evaluation(evaluation_id)
            if existing is not None:
                return self._skip(
                    evaluation_id,
                    f"order {existing.id} already {existing.status.value}",
                )

            profile = await ProfileRepository(session).get(evaluation.user_id)
            symbol = (profile.selected_asset if profile else None) or self.default_asset
            account_id = profile.brokerage_account_id if profile else None

            order = await orders.create_pending(
                evaluation.user_id,
                evaluation_id,
                symbol,
                evaluation.final_invest,
            )
            if order is None:
                return self._skip(evaluation_id, "order already in flight")
            # The attempt must be durable before the brokerage sees it
            await session.commit()

            try:
                if not account_id:
                    raise BrokerageError("No brokerage account linked")
                price = await self.brokerage.get_quote(symbol)
                notional = await self.brokerage.supports_notional(account_id)
                units = size_order(order.amount_dollars, price, notional)
                placed = await self.brokerage.place_market_buy(account_id, symbol, units)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                await orders.mark_failed(order.id, message)
                await session.commit()
                logger.warning(
                    "Trade failed | evaluation=%s | order=%s | %s",
                    evaluation_id,
                    order.id,
                    message,
                )
                await self._notify(order.user_id, notifications.ORDER_FAILED, {})
                return ExecutionOutcome(evaluation_id, FAILED, order.id, message)

            await orders.mark_submitted(
                order.id,
                placed.brokerage_order_id,
                placed.units,
                now_utc_naive(),
            )
            executed = await evaluations.transition(evaluation_id, EvaluationStatus.EXECUTED)
            if not executed:
                logger.warning(
                    "Evaluation %s left confirmed state during execution",
                    evaluation_id,
                )
            await session.commit()

            is_first = await orders.count_successful(order.user_id) == 1

        logger.info(
            "Trade submitted | evaluation=%s | order=%s | %s %s ($%s)",
            evaluation_id,
            order.id,
            placed.units,
            symbol,
            order.amount_dollars,
        )
        await self._notify(
            order.user_id,
            notifications.ORDER_SUBMITTED,
            {"amount": order.amount_dollars, "symbol": symbol},
        )
        await self._reward_investment(order.user_id, order.amount_dollars, is_first)
        return ExecutionOutcome(evaluation_id, SUBMITTED, order.id)

    async def execute_all_confirmed(self) -> BatchResult:
        """Execute every confirmed evaluation with a positive final invest"""
        async with self.session_factory() as session:
            evaluation_ids = await EvaluationRepository(session).list_ids_ready_for_execution()

        result = BatchResult()
        for evaluation_id in evaluation_ids:
            try:
                outcome = await self.execute(evaluation_id)
                result.record(outcome.status, outcome.reason)
            except Exception as exc:
                logger.exception("Trade execution crashed | evaluation=%s", evaluation_id)
                result.record(FAILED, f"{evaluation_id}: {exc}")

        logger.info(
            "Trade execution batch | submitted=%d | skipped=%d | failed=%d",
            result.succeeded,
            result.skipped,
            result.failed,
        )
        return result

    async def refresh_submitted_orders(self) -> BatchResult:
        """
        Poll the brokerage for submitted orders

        Filled orders count against the monthly cap from their fill date.
        """
        async with self.session_factory() as session:
            submitted = await OrderRepository(session).list_submitted()

        result = BatchResult()
        for order in submitted:
            try:
                status = await self._refresh_one(order)
                result.record(status)
            except Exception as exc:
                logger.error("Order status refresh failed | order=%s | %s", order.id, exc)
                result.record(FAILED, f"{order.id}: {exc}")

        if submitted:
            logger.info(
                "Order refresh | filled=%d | unchanged=%d | failed=%d",
                result.succeeded,
                result.skipped,
                result.failed,
            )
        return result

    async def _refresh_one(self, order: Order) -> str:
        async with self.session_factory() as session:
            orders = OrderRepository(session)
            account_id = None
            profile = await ProfileRepository(session).get(order.user_id)
            if profile is not None:
                account_id = profile.brokerage_account_id

            report = await self.brokerage.get_order_status(account_id, order.brokerage_order_id)

            if report.state == BrokerageOrderState.FILLED:
                moved = await orders.mark_filled(
                    order.id,
                    filled_at=now_utc_naive(),
                    filled_price=report.average_price,
                    shares=report.filled_units,
                )
                await session.commit()
                if not moved:
                    return SKIPPED
                await self._notify(
                    order.user_id,
                    notifications.ORDER_FILLED,
                    {"amount": order.amount_dollars, "symbol": order.symbol},
                )
                return SUBMITTED

            if report.state in (BrokerageOrderState.REJECTED, BrokerageOrderState.CANCELED):
                reason = report.reason or f"Order {report.state.value} by brokerage"
                await orders.mark_failed(order.id, reason, from_status=order.status)
                await session.commit()
                await self._notify(order.user_id, notifications.ORDER_FAILED, {})
                return FAILED

        return SKIPPED

    def _skip(self, evaluation_id: str, reason: str) -> ExecutionOutcome:
        logger.info("Trade skipped | evaluation=%s | %s", evaluation_id, reason)
        return ExecutionOutcome(evaluation_id, SKIPPED, reason=reason)

    async def _notify(self, user_id: str, kind: str, params: dict) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(user_id, kind, params)
        except Exception as exc:
            logger.error("Notification failed | user=%s | %s | %s", user_id, kind, exc)

    async def _reward_investment(self, user_id: str, amount: Decimal, is_first: bool) -> None:
        if self.rewards is None:
            return
        try:
            await self.rewards.on_investment_filled(user_id, amount, is_first)
        except Exception as exc:
            logger.error("Reward hook failed | user=%s | %s", user_id, exc)
