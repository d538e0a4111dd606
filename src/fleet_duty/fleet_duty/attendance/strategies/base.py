from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable

from ..model import AttendanceRecord, Punch


class HoursAccountingStrategy(ABC):
    """Strategy Pattern: decide which calendar days a closed punch's hours count toward."""

    name: str = ""

    @abstractmethod
    def credit(self, punch: Punch) -> dict[date, float]:
        raise NotImplementedError

    def record_total(self, record: AttendanceRecord, punches: Iterable[Punch] | None = None) -> float:
        """Hours owned by ``record``: carried hours plus its day's share of its closed punches."""
        punches = record.closed_punches if punches is None else punches
        own = sum(self.credit(p).get(record.work_date, 0.0) for p in punches if not p.is_open)
        return record.carried_hours + own
