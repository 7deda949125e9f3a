"""
Job Run Repository
Operator-visible batch history, also read for startup catch-up
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.infrastructure.db.models import JobRunModel
from owninstead.utils.time import now_utc_naive


class JobRunRepository:
    """Repository for JobRun"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def start(self, job_name: str, target: Optional[str] = None) -> int:
        model = JobRunModel(job_name=job_name, target=target, started_at=now_utc_naive())
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def finish(
        self,
        run_id: int,
        succeeded: int,
        skipped: int,
        failed: int,
        error: Optional[str] = None,
    ) -> None:
        await self.session.execute(
            update(JobRunModel)
            .where(JobRunModel.id == run_id)
            .values(
                finished_at=now_utc_naive(),
                succeeded=succeeded,
                skipped=skipped,
                failed=failed,
                error=error,
            )
        )

    async def last_finished_at(self, job_name: str) -> Optional[datetime]:
        """Start time of the latest completed full batch run"""
        result = await self.session.execute(
            select(JobRunModel.started_at)
            .where(
                JobRunModel.job_name == job_name,
                JobRunModel.target.is_(None),
                JobRunModel.finished_at.is_not(None),
            )
            .order_by(JobRunModel.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
