import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.api.deps import get_current_user, get_today
from owninstead.domain.errors import EvaluationNotFoundError, EvaluationTransitionError
from owninstead.domain.models import EvaluationStatus
from owninstead.domain.schemas.evaluation import (
    ConfirmRequest,
    EvaluationListResponse,
    EvaluationResponse,
    WeekPreviewResponse,
)
from owninstead.infrastructure.db.database import get_db
from owninstead.infrastructure.db.repositories.evaluation_repository import EvaluationRepository
from owninstead.services.evaluation_service import EvaluationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=EvaluationListResponse, summary="Evaluation history")
async def list_evaluations(
    status: Optional[EvaluationStatus] = None,
    rule_id: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await EvaluationRepository(db).list_for_user(
        user_id, status=status, rule_id=rule_id, offset=offset, limit=limit
    )
    return {"items": items, "total": total, "offset": offset, "limit": limit}


@router.get(
    "/current",
    response_model=Optional[EvaluationResponse],
    summary="Most recent evaluation awaiting review",
)
async def current_evaluation(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await EvaluationRepository(db).get_current_pending(user_id)


@router.get("/preview", response_model=WeekPreviewResponse, summary="Live view of this week")
async def preview_week(
    user_id: str = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    preview = await EvaluationService(db).preview_current_week(user_id, today)
    return {
        "period_start": preview.period_start,
        "period_end": preview.period_end,
        "total_projected": preview.total_projected,
        "rules": list(preview.rules),
    }


@router.get("/{evaluation_id}", response_model=EvaluationResponse, summary="Get an evaluation")
async def get_evaluation(
    evaluation_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    evaluation = await EvaluationRepository(db).get_for_user(evaluation_id, user_id)
    if evaluation is None:
        raise HTTPException(status_code=404, detail="Evaluation not found")
    return evaluation


@router.post(
    "/{evaluation_id}/confirm",
    response_model=EvaluationResponse,
    summary="Approve a pending evaluation for investment",
)
async def confirm_evaluation(
    evaluation_id: str,
    payload: Optional[ConfirmRequest] = None,
    user_id: str = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    excluded = payload.excluded_transaction_ids if payload else []
    try:
        return await EvaluationService(db).confirm(
            evaluation_id,
            user_id,
            today,
            excluded_transaction_ids=excluded,
        )

    except EvaluationNotFoundError:
        raise HTTPException(status_code=404, detail="Evaluation not found")

    except EvaluationTransitionError as e:
        # State-machine block (expected)
        logger.warning("⚠️ Confirm blocked: %s", e)
        raise HTTPException(status_code=409, detail=str(e))

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    except Exception:
        logger.exception("❌ Confirm failed due to system error")
        raise HTTPException(
            status_code=500,
            detail="Internal server error while confirming evaluation",
        )


@router.post(
    "/{evaluation_id}/skip",
    response_model=EvaluationResponse,
    summary="Decline a pending evaluation",
)
async def skip_evaluation(
    evaluation_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await EvaluationService(db).skip(evaluation_id, user_id)

    except EvaluationNotFoundError:
        raise HTTPException(status_code=404, detail="Evaluation not found")

    except EvaluationTransitionError as e:
        logger.warning("⚠️ Skip blocked: %s", e)
        raise HTTPException(status_code=409, detail=str(e))

    except Exception:
        logger.exception("❌ Skip failed due to system error")
        raise HTTPException(
            status_code=500,
            detail="Internal server error while skipping evaluation",
        )
