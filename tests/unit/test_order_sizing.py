from decimal import Decimal

import pytest

from owninstead.domain.errors import BrokerageError, OrderTooSmallError
from owninstead.services.trade_executor import (
    FAILED,
    SKIPPED,
    SUBMITTED,
    BatchResult,
    size_order,
)


def test_whole_units_when_notional_unsupported():
    assert size_order(Decimal("120"), Decimal("50"), notional=False) == Decimal("2")


def test_amount_below_one_share_is_too_small():
    with pytest.raises(OrderTooSmallError, match="too small"):
        size_order(Decimal("18"), Decimal("50.30"), notional=False)


def test_notional_units_round_down_to_six_places():
    assert size_order(Decimal("18"), Decimal("50"), notional=True) == Decimal("0.360000")
    assert size_order(Decimal("10"), Decimal("3"), notional=True) == Decimal("3.333333")


def test_notional_dust_is_too_small():
    with pytest.raises(OrderTooSmallError):
        size_order(Decimal("0.0001"), Decimal("500"), notional=True)


@pytest.mark.parametrize("price", [None, Decimal("0"), Decimal("-1")])
def test_missing_quote_is_a_brokerage_error(price):
    with pytest.raises(BrokerageError) as exc_info:
        size_order(Decimal("18"), price, notional=True)
    assert not isinstance(exc_info.value, OrderTooSmallError)


def test_batch_result_counts_by_status():
    result = BatchResult()
    result.record(SUBMITTED)
    result.record(SKIPPED, "eval-2: status is pending")
    result.record(FAILED, "eval-3: broker down")
    result.record(SUBMITTED)

    assert (result.succeeded, result.skipped, result.failed) == (2, 1, 1)
    assert result.total == 4
    assert result.messages == ["eval-2: status is pending", "eval-3: broker down"]
