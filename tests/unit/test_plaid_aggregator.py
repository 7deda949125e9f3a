import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from owninstead.domain.errors import BankSyncError
from owninstead.infrastructure.banking.plaid import PlaidAggregator


def _raw(tx_id, amount, **kw):
    raw = {
        "transaction_id": tx_id,
        "amount": amount,
        "date": "2026-03-03",
        "name": "DOORDASH*ORDER",
        "merchant_name": "DoorDash",
        "category": ["Food and Drink", "Restaurants"],
        "pending": False,
    }
    raw.update(kw)
    return raw


@pytest.mark.asyncio
async def test_fetch_follows_pagination():
    pages = [
        [_raw("t1", 12.5), _raw("t2", -3.25, merchant_name=None)],
        [_raw("t3", 8, pending=True)],
    ]
    seen_offsets = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/transactions/get"
        assert body["access_token"] == "access-1"
        assert body["start_date"] == "2026-02-07"
        offset = body["options"]["offset"]
        seen_offsets.append(offset)
        page = pages[0] if offset == 0 else pages[1]
        return httpx.Response(200, json={"transactions": page, "total_transactions": 3})

    aggregator = PlaidAggregator("cid", "secret", transport=httpx.MockTransport(handler))
    txs = await aggregator.fetch_transactions("access-1", date(2026, 2, 7), date(2026, 3, 9))

    assert seen_offsets == [0, 2]
    assert [tx.transaction_id for tx in txs] == ["t1", "t2", "t3"]
    assert txs[0].amount == Decimal("12.5")
    assert txs[0].category == ("Food and Drink", "Restaurants")
    assert txs[1].merchant_name is None
    assert txs[1].name == "DOORDASH*ORDER"
    assert txs[2].pending is True


@pytest.mark.asyncio
async def test_api_error_raises_bank_sync_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error_code": "ITEM_LOGIN_REQUIRED", "error_message": "login required"},
        )

    aggregator = PlaidAggregator("cid", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(BankSyncError, match="ITEM_LOGIN_REQUIRED"):
        await aggregator.fetch_transactions("access-1", date(2026, 3, 1), date(2026, 3, 9))


@pytest.mark.asyncio
async def test_transport_error_raises_bank_sync_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    aggregator = PlaidAggregator("cid", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(BankSyncError, match="request failed"):
        await aggregator.fetch_transactions("access-1", date(2026, 3, 1), date(2026, 3, 9))


def test_unknown_environment_rejected():
    with pytest.raises(ValueError):
        PlaidAggregator("cid", "secret", environment="staging")
