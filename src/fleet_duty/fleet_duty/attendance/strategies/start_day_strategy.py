from __future__ import annotations

from datetime import date

from ...common.datetime_utils import hours_between
from ..model import Punch
from .base import HoursAccountingStrategy


class StartDayAccounting(HoursAccountingStrategy):
    """Whole duration goes to the day the punch started on."""

    name = "start_day"

    def credit(self, punch: Punch) -> dict[date, float]:
        if punch.out_time is None:
            return {}
        hours = punch.duration if punch.duration is not None else hours_between(punch.in_time, punch.out_time)
        return {punch.in_time.date(): hours}
