"""
Bank aggregator protocol for type hints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple


@dataclass(frozen=True)
class ProviderTransaction:
    """Transaction as reported by the aggregator (signed amount)"""
    transaction_id: str
    amount: Decimal
    date: date
    name: Optional[str] = None
    merchant_name: Optional[str] = None
    category: Tuple[str, ...] = ()
    pending: bool = False


class BankAggregator(Protocol):
    async def fetch_transactions(
        self,
        access_token: str,
        start: date,
        end: date,
    ) -> List[ProviderTransaction]:
        ...
