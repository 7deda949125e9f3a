from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from owninstead.domain.models import OrderStatus


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    evaluation_id: Optional[str]
    symbol: str
    amount_dollars: Decimal
    shares: Optional[Decimal]
    status: OrderStatus
    order_type: str
    brokerage_order_id: Optional[str]
    submitted_at: Optional[datetime]
    filled_at: Optional[datetime]
    filled_price: Optional[Decimal]
    error_message: Optional[str]
    created_at: Optional[datetime]


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int
    offset: int
    limit: int
