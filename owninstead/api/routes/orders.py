from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.api.deps import get_current_user
from owninstead.domain.models import OrderStatus
from owninstead.domain.schemas.order import OrderListResponse, OrderResponse
from owninstead.infrastructure.db.database import get_db
from owninstead.infrastructure.db.repositories.order_repository import OrderRepository

router = APIRouter()


@router.get("", response_model=OrderListResponse, summary="Order history")
async def list_orders(
    status: Optional[OrderStatus] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await OrderRepository(db).list_for_user(
        user_id, status=status, offset=offset, limit=limit
    )
    return {"items": items, "total": total, "offset": offset, "limit": limit}


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderRepository(db).get_for_user(order_id, user_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
