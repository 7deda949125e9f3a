"""
Brokerage client factory (config-driven).
"""

from __future__ import annotations

from owninstead.config import settings
from owninstead.infrastructure.brokerage.paper import PaperBrokerage, parse_fixed_prices
from owninstead.infrastructure.brokerage.types import BrokerageClient
from owninstead.infrastructure.brokerage.yfinance_quotes import YFinanceQuoteProvider


def get_brokerage_client() -> BrokerageClient:
    mode = (settings.BROKERAGE_MODE or "paper").lower()
    if mode != "paper":
        raise ValueError(f"Unsupported BROKERAGE_MODE: {settings.BROKERAGE_MODE}")

    fixed_prices = parse_fixed_prices(settings.PAPER_FIXED_PRICES)
    quotes = None if fixed_prices else YFinanceQuoteProvider()
    return PaperBrokerage(
        quotes=quotes,
        fixed_prices=fixed_prices,
        notional=settings.PAPER_SUPPORTS_NOTIONAL,
    )
