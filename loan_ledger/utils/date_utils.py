"""Date manipulation utilities and injectable clocks"""

from datetime import date, datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta


def add_weeks(from_date: date, weeks: int) -> date:
    return from_date + timedelta(days=7 * weeks)


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping the day (Jan 31 + 1 month -> Feb 28/29)"""
    return from_date + relativedelta(months=months)


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a settable instant, for tests and replays"""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **kwargs) -> None:
        """Move forward by a timedelta given as keyword arguments (days=3)"""
        self.current = self.current + timedelta(**kwargs)
