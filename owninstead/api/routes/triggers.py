"""
Manual triggers for support and testing.

Each trigger runs the same job handler as the scheduled batch, restricted to
the caller (or to one of the caller's evaluations).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.api.deps import get_current_user, get_dispatcher
from owninstead.domain.schemas.trigger import TriggerResponse
from owninstead.infrastructure.db.database import get_db
from owninstead.infrastructure.db.repositories.evaluation_repository import EvaluationRepository
from owninstead.scheduler.dispatch import DispatchReceipt, JobDispatcher
from owninstead.scheduler.jobs import TRADE_EXECUTION, TRANSACTION_SYNC, WEEKLY_EVALUATION

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(receipt: DispatchReceipt) -> dict:
    result = None
    if receipt.result is not None:
        result = {
            "succeeded": receipt.result.succeeded,
            "skipped": receipt.result.skipped,
            "failed": receipt.result.failed,
            "messages": receipt.result.messages,
        }
    return {
        "job": receipt.job_name,
        "target": receipt.target,
        "mode": receipt.mode,
        "result": result,
    }


@router.post("/evaluate", response_model=TriggerResponse, summary="Evaluate my rules now")
async def trigger_evaluation(
    user_id: str = Depends(get_current_user),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    logger.info("📥 Manual evaluation trigger | user=%s", user_id)
    try:
        receipt = await dispatcher.dispatch(WEEKLY_EVALUATION, user_id)
    except Exception:
        logger.exception("❌ Evaluation trigger failed")
        raise HTTPException(status_code=500, detail="Internal server error while evaluating")
    return _to_response(receipt)


@router.post(
    "/evaluations/{evaluation_id}/execute",
    response_model=TriggerResponse,
    summary="Execute the trade for one of my evaluations now",
)
async def trigger_execution(
    evaluation_id: str,
    user_id: str = Depends(get_current_user),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db),
):
    if await EvaluationRepository(db).get_for_user(evaluation_id, user_id) is None:
        raise HTTPException(status_code=404, detail="Evaluation not found")

    logger.info("📥 Manual execution trigger | user=%s | evaluation=%s", user_id, evaluation_id)
    try:
        receipt = await dispatcher.dispatch(TRADE_EXECUTION, evaluation_id)
    except Exception:
        logger.exception("❌ Execution trigger failed")
        raise HTTPException(status_code=500, detail="Internal server error while executing")
    return _to_response(receipt)


@router.post("/sync", response_model=TriggerResponse, summary="Sync my bank transactions now")
async def trigger_sync(
    user_id: str = Depends(get_current_user),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    logger.info("📥 Manual sync trigger | user=%s", user_id)
    try:
        receipt = await dispatcher.dispatch(TRANSACTION_SYNC, user_id)
    except Exception:
        logger.exception("❌ Sync trigger failed")
        raise HTTPException(status_code=500, detail="Internal server error while syncing")
    return _to_response(receipt)
