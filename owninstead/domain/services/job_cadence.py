"""
JOB CADENCE

Pure "should this batch run now?" decision, decoupled from the queue or
scheduler that delivers the run. Idempotency of the batch itself is
guaranteed by storage constraints, so a spurious "due" is harmless.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytz
from apscheduler.triggers.cron import CronTrigger

from owninstead.utils.time import to_utc_aware


@dataclass(frozen=True)
class JobCadence:
    name: str
    crontab: str
    timezone: str = "UTC"

    def trigger(self) -> CronTrigger:
        return CronTrigger.from_crontab(self.crontab, timezone=pytz.timezone(self.timezone))

    def next_run_after(self, moment: datetime) -> Optional[datetime]:
        """First scheduled fire time strictly after ``moment``."""
        moment = to_utc_aware(moment)
        return self.trigger().get_next_fire_time(None, moment + timedelta(microseconds=1))

    def is_due(self, last_run: Optional[datetime], now: datetime) -> bool:
        """
        Given the last completed run and the current time, decide whether a
        scheduled occurrence was missed and the batch should run.
        A job that never ran is due.
        """
        if last_run is None:
            return True
        next_fire = self.next_run_after(last_run)
        return next_fire is not None and next_fire <= to_utc_aware(now)
