"""
Brokerage client protocol for type hints.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol


class BrokerageOrderState(str, Enum):
    ACCEPTED = "accepted"
    FILLED = "filled"
    REJECTED = "rejected"
    CANCELED = "canceled"


@dataclass(frozen=True)
class PlacedOrder:
    """Brokerage acknowledgement of a market buy"""
    brokerage_order_id: str
    symbol: str
    units: Decimal
    state: BrokerageOrderState = BrokerageOrderState.ACCEPTED


@dataclass(frozen=True)
class OrderStatusReport:
    brokerage_order_id: str
    state: BrokerageOrderState
    filled_units: Optional[Decimal] = None
    average_price: Optional[Decimal] = None
    reason: Optional[str] = None


class BrokerageClient(Protocol):
    async def get_quote(self, symbol: str) -> Optional[Decimal]:
        ...

    async def supports_notional(self, account_id: Optional[str]) -> bool:
        ...

    async def place_market_buy(
        self,
        account_id: Optional[str],
        symbol: str,
        units: Decimal,
    ) -> PlacedOrder:
        ...

    async def get_order_status(
        self,
        account_id: Optional[str],
        brokerage_order_id: str,
    ) -> OrderStatusReport:
        ...


class QuoteProvider(Protocol):
    async def get_current_price(self, symbol: str) -> Optional[Decimal]:
        ...
