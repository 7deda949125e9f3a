from datetime import date, datetime, timezone

from owninstead.domain.services.job_cadence import JobCadence
from owninstead.utils.time import (
    current_week_range,
    local_today,
    month_bounds,
    previous_week_range,
    week_start,
)


WEEKLY = JobCadence(name="weekly_evaluation", crontab="0 6 * * sun")


def test_never_run_job_is_due():
    assert WEEKLY.is_due(None, datetime(2026, 3, 9, 12, 0))


def test_job_not_due_before_next_occurrence():
    last_run = datetime(2026, 3, 8, 6, 0, 5)
    assert not WEEKLY.is_due(last_run, datetime(2026, 3, 9, 12, 0))


def test_missed_occurrence_makes_job_due():
    last_run = datetime(2026, 3, 1, 6, 0, 5)
    assert WEEKLY.is_due(last_run, datetime(2026, 3, 9, 12, 0))


def test_next_run_after_is_strictly_later():
    fire = datetime(2026, 3, 8, 6, 0)
    assert WEEKLY.next_run_after(fire) == datetime(2026, 3, 15, 6, 0, tzinfo=timezone.utc)


def test_cadence_in_business_timezone():
    cadence = JobCadence(name="trade_execution", crontab="35 9 * * mon", timezone="America/New_York")
    # 09:35 EDT on Monday 2026-03-09 is 13:35 UTC
    expected = datetime(2026, 3, 9, 13, 35, tzinfo=timezone.utc)
    assert cadence.next_run_after(datetime(2026, 3, 9, 12, 0)) == expected


def test_week_start_is_sunday():
    assert week_start(date(2026, 3, 9)) == date(2026, 3, 8)
    assert week_start(date(2026, 3, 8)) == date(2026, 3, 8)
    assert week_start(date(2026, 3, 7)) == date(2026, 3, 1)


def test_previous_week_range_is_last_full_week():
    expected = (date(2026, 3, 1), date(2026, 3, 7))
    assert previous_week_range(date(2026, 3, 8)) == expected
    assert previous_week_range(date(2026, 3, 9)) == expected
    assert previous_week_range(date(2026, 3, 14)) == expected


def test_current_week_range_runs_through_today():
    assert current_week_range(date(2026, 3, 11)) == (date(2026, 3, 8), date(2026, 3, 11))


def test_month_bounds_roll_over_year():
    assert month_bounds(date(2026, 12, 15)) == (datetime(2026, 12, 1), datetime(2027, 1, 1))


def test_local_today_uses_business_timezone():
    moment = datetime(2026, 3, 9, 3, 0)
    assert local_today("UTC", moment) == date(2026, 3, 9)
    assert local_today("America/New_York", moment) == date(2026, 3, 8)
