from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from owninstead.domain.models import EvaluationStatus, OrderStatus
from owninstead.infrastructure.brokerage.types import BrokerageOrderState
from owninstead.infrastructure.db.models import EvaluationModel, OrderModel
from owninstead.services import notification_service as notifications
from owninstead.services.trade_executor import FAILED, SKIPPED, SUBMITTED, TradeExecutor


async def _orders(session_factory, evaluation_id):
    async with session_factory() as session:
        result = await session.execute(
            select(OrderModel)
            .where(OrderModel.evaluation_id == evaluation_id)
            .order_by(OrderModel.created_at)
        )
        return list(result.scalars().all())


async def _evaluation_status(session_factory, evaluation_id):
    async with session_factory() as session:
        return (await session.get(EvaluationModel, evaluation_id)).status


async def _confirmed(seed, **profile_kw):
    await seed.profile(**profile_kw)
    rule = await seed.rule()
    return await seed.evaluation(rule.id, status=EvaluationStatus.CONFIRMED)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_confirmed_evaluation_places_notional_order(
    trade_executor, seed, session_factory, brokerage, notifier, rewards
):
    evaluation = await _confirmed(seed)

    outcome = await trade_executor.execute(evaluation.id)

    assert outcome.status == SUBMITTED
    assert brokerage.placed == [("acct-1", "VTI", Decimal("0.360000"))]

    orders = await _orders(session_factory, evaluation.id)
    assert len(orders) == 1
    assert orders[0].id == outcome.order_id
    assert orders[0].status == OrderStatus.SUBMITTED
    assert orders[0].brokerage_order_id == "brk-1"
    assert orders[0].amount_dollars == Decimal("18")
    assert orders[0].submitted_at is not None

    assert await _evaluation_status(session_factory, evaluation.id) == EvaluationStatus.EXECUTED
    assert notifier.sent == [
        ("user-1", notifications.ORDER_SUBMITTED, {"amount": Decimal("18"), "symbol": "VTI"}),
    ]
    assert rewards.invested == [("user-1", Decimal("18"), True)]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_selected_asset_and_whole_units(trade_executor, seed, brokerage):
    evaluation = await _confirmed(seed, selected_asset="VOO")
    brokerage.notional = False
    brokerage.price = Decimal("6")

    outcome = await trade_executor.execute(evaluation.id)

    assert outcome.status == SUBMITTED
    assert brokerage.placed == [("acct-1", "VOO", Decimal("3"))]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_too_small_for_one_share_fails_without_placing(
    trade_executor, seed, session_factory, brokerage, notifier
):
    evaluation = await _confirmed(seed)
    brokerage.notional = False
    brokerage.price = Decimal("50.30")

    outcome = await trade_executor.execute(evaluation.id)

    assert outcome.status == FAILED
    assert "too small" in outcome.reason
    assert brokerage.placed == []

    orders = await _orders(session_factory, evaluation.id)
    assert [o.status for o in orders] == [OrderStatus.FAILED]
    assert "too small" in orders[0].error_message
    # failure never regresses the evaluation
    assert await _evaluation_status(session_factory, evaluation.id) == EvaluationStatus.CONFIRMED
    assert notifier.kinds() == [notifications.ORDER_FAILED]


class ExplodingNotifier:
    async def notify(self, user_id, kind, params=None):
        raise RuntimeError("push gateway down")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notification_failure_does_not_change_outcome(
    session_factory, seed, brokerage, rewards
):
    executor = TradeExecutor(session_factory, brokerage, notifier=ExplodingNotifier(), rewards=rewards)
    evaluation = await _confirmed(seed)

    outcome = await executor.execute(evaluation.id)

    assert outcome.status == SUBMITTED
    assert rewards.invested == [("user-1", Decimal("18"), True)]
    assert await _evaluation_status(session_factory, evaluation.id) == EvaluationStatus.EXECUTED

    # the failure path notifies too
    earlier = await seed.evaluation(
        evaluation.rule_id, period_start=date(2026, 2, 22), period_end=date(2026, 2, 28)
    )
    brokerage.fail_with = RuntimeError("market closed")

    failed = await executor.execute(earlier.id)

    assert failed.status == FAILED
    assert failed.reason == "market closed"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_brokerage_account_fails_order(trade_executor, seed, brokerage):
    evaluation = await _confirmed(seed, brokerage_account_id=None)

    outcome = await trade_executor.execute(evaluation.id)

    assert outcome.status == FAILED
    assert outcome.reason == "No brokerage account linked"
    assert brokerage.quote_calls == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_only_confirmed_evaluations_execute(trade_executor, seed, session_factory, brokerage):
    await seed.profile()
    rule = await seed.rule()
    pending = await seed.evaluation(rule.id, status=EvaluationStatus.PENDING)

    outcome = await trade_executor.execute(pending.id)
    missing = await trade_executor.execute("eval-missing")

    assert outcome.status == SKIPPED
    assert outcome.reason == "status is pending"
    assert missing.status == SKIPPED
    assert await _orders(session_factory, pending.id) == []
    assert brokerage.placed == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_existing_active_order_blocks_second_attempt(trade_executor, seed, brokerage):
    evaluation = await _confirmed(seed)
    await seed.order(evaluation_id=evaluation.id, status=OrderStatus.SUBMITTED, amount="18")

    outcome = await trade_executor.execute(evaluation.id)

    assert outcome.status == SKIPPED
    assert "already submitted" in outcome.reason
    assert brokerage.placed == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_retry_after_brokerage_failure(trade_executor, seed, session_factory, brokerage, rewards):
    evaluation = await _confirmed(seed)
    brokerage.fail_with = RuntimeError("brokerage unavailable")

    first = await trade_executor.execute(evaluation.id)
    brokerage.fail_with = None
    second = await trade_executor.execute(evaluation.id)
    third = await trade_executor.execute(evaluation.id)

    assert first.status == FAILED
    assert first.reason == "brokerage unavailable"
    assert second.status == SUBMITTED
    assert third.status == SKIPPED

    orders = await _orders(session_factory, evaluation.id)
    assert sorted(o.status for o in orders) == sorted([OrderStatus.FAILED, OrderStatus.SUBMITTED])
    assert rewards.invested == [("user-1", Decimal("18"), True)]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_execute_all_isolates_failures(trade_executor, seed, brokerage):
    ok = await _confirmed(seed)
    await seed.profile("user-2", brokerage_account_id=None)
    rule = await seed.rule(user_id="user-2")
    await seed.evaluation(rule.id, user_id="user-2")
    await seed.evaluation(
        rule.id,
        user_id="user-2",
        status=EvaluationStatus.PENDING,
        period_start=ok.period_start.replace(day=8),
        period_end=ok.period_end.replace(day=14),
    )

    result = await trade_executor.execute_all_confirmed()

    assert (result.succeeded, result.skipped, result.failed) == (1, 0, 1)
    assert len(brokerage.placed) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refresh_marks_filled_orders(trade_executor, seed, session_factory, notifier):
    evaluation = await _confirmed(seed)
    await trade_executor.execute(evaluation.id)

    result = await trade_executor.refresh_submitted_orders()

    assert result.succeeded == 1
    order = (await _orders(session_factory, evaluation.id))[0]
    assert order.status == OrderStatus.FILLED
    assert order.filled_price == Decimal("50")
    assert order.filled_at is not None
    assert notifier.kinds() == [notifications.ORDER_SUBMITTED, notifications.ORDER_FILLED]

    # nothing left to poll
    assert (await trade_executor.refresh_submitted_orders()).total == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refresh_records_rejection(trade_executor, seed, session_factory, brokerage, notifier):
    evaluation = await _confirmed(seed)
    await trade_executor.execute(evaluation.id)
    brokerage.status_state = BrokerageOrderState.REJECTED

    result = await trade_executor.refresh_submitted_orders()

    assert result.failed == 1
    order = (await _orders(session_factory, evaluation.id))[0]
    assert order.status == OrderStatus.FAILED
    assert order.error_message == "insufficient buying power"
    assert await _evaluation_status(session_factory, evaluation.id) == EvaluationStatus.EXECUTED
    assert notifier.kinds()[-1] == notifications.ORDER_FAILED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_accepted_orders_stay_submitted(trade_executor, seed, session_factory, brokerage):
    evaluation = await _confirmed(seed)
    await trade_executor.execute(evaluation.id)
    brokerage.status_state = BrokerageOrderState.ACCEPTED

    result = await trade_executor.refresh_submitted_orders()

    assert result.skipped == 1
    order = (await _orders(session_factory, evaluation.id))[0]
    assert order.status == OrderStatus.SUBMITTED
