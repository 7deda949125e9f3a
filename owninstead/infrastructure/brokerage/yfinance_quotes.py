"""
YFinance Quote Provider
Async-safe Yahoo Finance last-price lookup for US ETFs
"""

import asyncio
import logging
import random
import time
from decimal import Decimal
from typing import Dict, Optional

import yfinance as yf

logger = logging.getLogger(__name__)


class YFinanceQuoteProvider:
    """
    Latest close / last trade from Yahoo Finance
    Async-safe via thread offloading
    """

    def __init__(self, cache_ttl_seconds: int = 60, retries: int = 2):
        self.cache_ttl_seconds = cache_ttl_seconds
        self.retries = retries
        self._cache: Dict[str, tuple[float, Decimal]] = {}

    # ------------------------------------------------------------------
    # INTERNAL HELPERS
    # ------------------------------------------------------------------

    async def _history(self, ticker: yf.Ticker, **kwargs):
        return await asyncio.to_thread(ticker.history, **kwargs)

    async def _history_with_retry(self, ticker: yf.Ticker, **kwargs):
        """
        Retry wrapper around history() to handle transient failures.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                return await self._history(ticker, **kwargs)
            except Exception as exc:
                last_exc = exc
                await asyncio.sleep(0.4 * (2 ** attempt) + random.random() * 0.2)
        raise last_exc

    @staticmethod
    def _quantize(value: float) -> Decimal:
        return Decimal(str(value)).quantize(Decimal("0.01"))

    def _cache_get(self, key: str) -> Optional[Decimal]:
        cached = self._cache.get(key)
        if not cached:
            return None
        ts, value = cached
        if time.time() - ts > self.cache_ttl_seconds:
            return None
        return value

    # ------------------------------------------------------------------
    # QUOTES
    # ------------------------------------------------------------------

    async def get_current_price(self, symbol: str) -> Optional[Decimal]:
        symbol = symbol.upper()
        cached = self._cache_get(symbol)
        if cached is not None:
            return cached

        try:
            ticker = yf.Ticker(symbol)
            hist = await self._history_with_retry(
                ticker,
                period="5d",
                interval="1d",
                auto_adjust=False,
            )
        except Exception as e:
            logger.error(f"Error fetching current price for {symbol}: {e}")
            return None

        if hist.empty or "Close" not in hist:
            logger.warning(f"No price data for {symbol}")
            return None

        close = float(hist["Close"].dropna().iloc[-1])
        if close <= 0:
            return None

        price = self._quantize(close)
        self._cache[symbol] = (time.time(), price)
        return price
