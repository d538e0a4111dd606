from __future__ import annotations

from datetime import date, timedelta

from ...common.datetime_utils import hours_between, start_of_day
from ..model import Punch
from .base import HoursAccountingStrategy


class SplitAcrossDaysAccounting(HoursAccountingStrategy):
    """Each midnight crossed moves the remaining hours to the next day's record."""

    name = "split"

    def credit(self, punch: Punch) -> dict[date, float]:
        if punch.out_time is None:
            return {}
        credits: dict[date, float] = {punch.in_time.date(): 0.0}
        cursor = punch.in_time
        while cursor < punch.out_time:
            segment_end = min(start_of_day(cursor) + timedelta(days=1), punch.out_time)
            day = cursor.date()
            credits[day] = credits.get(day, 0.0) + hours_between(cursor, segment_end)
            cursor = segment_end
        return credits
