from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.infrastructure.db.database import get_db

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_status = "disabled"
    if scheduler is not None:
        scheduler_status = "running" if scheduler.running else "stopped"

    return {"status": "ok", "scheduler": scheduler_status}


@router.get("/ready")
async def ready(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception:
        db_connected = False

    return {
        "status": "ready" if db_connected else "not_ready",
        "db_connected": db_connected,
    }
