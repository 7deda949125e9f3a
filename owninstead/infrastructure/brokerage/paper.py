"""
Paper Brokerage
In-process brokerage that accepts market buys at the current quote.
Orders are acknowledged on placement and report filled on the next status poll.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, Mapping, Optional

from owninstead.infrastructure.brokerage.types import (
    BrokerageOrderState,
    OrderStatusReport,
    PlacedOrder,
    QuoteProvider,
)

logger = logging.getLogger(__name__)


def parse_fixed_prices(raw: str) -> Dict[str, Decimal]:
    """
    Parse a fixed price map.

    Format: PAPER_FIXED_PRICES="VTI=250.10,VOO=480"
    """
    prices: Dict[str, Decimal] = {}
    for pair in (raw or "").split(","):
        pair = pair.strip()
        if not pair or "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        key = key.strip().upper()
        try:
            price = Decimal(value.strip())
        except ArithmeticError:
            logger.warning("Ignoring unparsable paper price for %s", key)
            continue
        if key:
            prices[key] = price
    return prices


class PaperBrokerage:
    """
    BrokerageClient backed by a quote source instead of a live account
    """

    def __init__(
        self,
        quotes: Optional[QuoteProvider] = None,
        fixed_prices: Optional[Mapping[str, Decimal]] = None,
        notional: bool = True,
    ):
        if quotes is None and not fixed_prices:
            raise ValueError("PaperBrokerage needs a quote provider or fixed prices")
        self.quotes = quotes
        self.fixed_prices = {k.upper(): v for k, v in (fixed_prices or {}).items()}
        self.notional = notional
        self._orders: Dict[str, tuple[str, Decimal]] = {}

    async def get_quote(self, symbol: str) -> Optional[Decimal]:
        symbol = symbol.upper()
        if symbol in self.fixed_prices:
            return self.fixed_prices[symbol]
        if self.quotes is None:
            return None
        return await self.quotes.get_current_price(symbol)

    async def supports_notional(self, account_id: Optional[str]) -> bool:
        return self.notional

    async def place_market_buy(
        self,
        account_id: Optional[str],
        symbol: str,
        units: Decimal,
    ) -> PlacedOrder:
        if units <= 0:
            raise ValueError("units must be positive")

        order_id = f"paper-{uuid.uuid4()}"
        self._orders[order_id] = (symbol.upper(), units)
        logger.info(
            "Paper market BUY accepted | account=%s | %s x %s | id=%s",
            account_id,
            units,
            symbol,
            order_id,
        )
        return PlacedOrder(brokerage_order_id=order_id, symbol=symbol.upper(), units=units)

    async def get_order_status(
        self,
        account_id: Optional[str],
        brokerage_order_id: str,
    ) -> OrderStatusReport:
        placed = self._orders.get(brokerage_order_id)
        if placed is None:
            # Orders placed before a restart are unknown to this process
            return OrderStatusReport(
                brokerage_order_id=brokerage_order_id,
                state=BrokerageOrderState.ACCEPTED,
            )

        symbol, units = placed
        price = await self.get_quote(symbol)
        if price is None or price <= 0:
            return OrderStatusReport(
                brokerage_order_id=brokerage_order_id,
                state=BrokerageOrderState.ACCEPTED,
            )

        return OrderStatusReport(
            brokerage_order_id=brokerage_order_id,
            state=BrokerageOrderState.FILLED,
            filled_units=units,
            average_price=price,
        )
