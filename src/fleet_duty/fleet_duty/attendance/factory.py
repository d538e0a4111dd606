from __future__ import annotations

from dataclasses import dataclass

from ..core.constants import DEFAULT_HOURS_ACCOUNTING
from ..core.exceptions import ValidationError
from .strategies.base import HoursAccountingStrategy
from .strategies.split_days_strategy import SplitAcrossDaysAccounting
from .strategies.start_day_strategy import StartDayAccounting


@dataclass
class HoursAccountingFactory:
    """Factory Pattern: pick the hours-accounting strategy named in settings."""

    def for_name(self, name: str | None = None) -> HoursAccountingStrategy:
        key = (name or DEFAULT_HOURS_ACCOUNTING).strip().lower()
        if key in {"start_day", "start-day", "startday"}:
            return StartDayAccounting()
        if key in {"split", "split_days", "split-across-days"}:
            return SplitAcrossDaysAccounting()
        raise ValidationError(f"Unknown hours accounting strategy: {name!r}")
