"""
Plaid Aggregator
Reads posted transactions through the Plaid REST API (httpx)
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

import httpx

from owninstead.domain.errors import BankSyncError
from owninstead.infrastructure.banking.types import ProviderTransaction

logger = logging.getLogger(__name__)

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

PAGE_SIZE = 500


class PlaidAggregator:
    """BankAggregator backed by Plaid /transactions/get"""

    def __init__(
        self,
        client_id: str,
        secret: str,
        environment: str = "sandbox",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if environment not in PLAID_HOSTS:
            raise ValueError(f"Unknown Plaid environment: {environment}")
        self.client_id = client_id
        self.secret = secret
        self.base_url = PLAID_HOSTS[environment]
        self.timeout = timeout
        self._transport = transport

    async def fetch_transactions(
        self,
        access_token: str,
        start: date,
        end: date,
    ) -> List[ProviderTransaction]:
        """
        All transactions for an item between two dates, following pagination

        Raises:
            BankSyncError: On HTTP or Plaid API errors
        """
        collected: List[ProviderTransaction] = []
        offset = 0

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            while True:
                payload = {
                    "client_id": self.client_id,
                    "secret": self.secret,
                    "access_token": access_token,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "options": {"count": PAGE_SIZE, "offset": offset},
                }
                try:
                    resp = await client.post("/transactions/get", json=payload)
                except httpx.HTTPError as exc:
                    raise BankSyncError(f"Plaid request failed: {exc}") from exc

                try:
                    data = resp.json()
                except ValueError:
                    data = {}
                if resp.status_code != 200:
                    code = data.get("error_code", resp.status_code)
                    message = data.get("error_message", resp.text[:200])
                    raise BankSyncError(f"Plaid error {code}: {message}")

                page = data.get("transactions", [])
                collected.extend(self._parse(tx) for tx in page)
                offset += len(page)

                total = int(data.get("total_transactions", offset))
                if not page or offset >= total:
                    break

        logger.debug("Fetched %d Plaid transactions", len(collected))
        return collected

    @staticmethod
    def _parse(raw: Dict) -> ProviderTransaction:
        return ProviderTransaction(
            transaction_id=raw["transaction_id"],
            amount=Decimal(str(raw["amount"])),
            date=date.fromisoformat(raw["date"]),
            name=raw.get("name"),
            merchant_name=raw.get("merchant_name"),
            category=tuple(raw.get("category") or ()),
            pending=bool(raw.get("pending", False)),
        )
