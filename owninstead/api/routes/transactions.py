from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.api.deps import get_current_user, get_today
from owninstead.domain.schemas.transaction import TransactionResponse, TransactionUpdateRequest
from owninstead.domain.services.classifier import default_classifier
from owninstead.infrastructure.db.database import get_db
from owninstead.infrastructure.db.repositories.transaction_repository import (
    TransactionRepository,
)
from owninstead.utils.time import current_week_range

router = APIRouter()


def _to_response(tx) -> TransactionResponse:
    category = default_classifier.classify(tx)
    return TransactionResponse(
        id=tx.id,
        amount=tx.amount,
        merchant_name=tx.merchant_name,
        category_labels=list(tx.category_labels),
        category=category.value if category else None,
        date=tx.date,
        excluded=tx.excluded,
    )


@router.get("", response_model=List[TransactionResponse], summary="Synced transactions")
async def list_transactions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    user_id: str = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    """Defaults to the current week so far"""
    week_start, week_end = current_week_range(today)
    start = start or week_start
    end = end or week_end
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")

    transactions = await TransactionRepository(db).list_for_user(user_id, start, end)
    return [_to_response(tx) for tx in transactions]


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Exclude a transaction from evaluation (or include it again)",
)
async def update_transaction(
    transaction_id: str,
    payload: TransactionUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = TransactionRepository(db)
    changed = await repo.set_excluded([transaction_id], user_id, excluded=payload.excluded)
    if not changed:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _to_response(await repo.get_for_user(transaction_id, user_id))
