from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    merchant_name: Optional[str]
    category_labels: List[str]
    category: Optional[str] = None
    date: date
    excluded: bool


class TransactionUpdateRequest(BaseModel):
    excluded: bool
