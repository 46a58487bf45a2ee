from datetime import datetime, timedelta, timezone


class Clock:
    """Source of "now" for borrow and overdue logic.

    Returns naive UTC datetimes, which is what the database columns store.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **delta) -> None:
        self.moment = self.moment + timedelta(**delta)


system_clock = Clock()
