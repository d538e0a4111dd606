from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..attendance.model import Location


@dataclass(frozen=True)
class IdleDriver:
    driver_id: int
    name: Optional[str]
    phone: Optional[str]
    punch_in_time: datetime
    idle_from: datetime
    idle_hours: float
    location: Optional[Location] = None  # redacted unless the caller is an admin
