from __future__ import annotations

from datetime import date
from typing import Protocol


class FuelingRepository(Protocol):
    def count_active_for_date(self, day: date) -> int:
        raise NotImplementedError
