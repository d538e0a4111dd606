from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..common.lifecycle import Lifecycle


@dataclass(frozen=True)
class Vehicle:
    vehicle_id: int
    name: str
    plate_number: str
    vehicle_type: Optional[str] = None
    in_maintenance: bool = False
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def is_active(self) -> bool:
        """Usable for trips: not deleted and not in the workshop."""
        return self.lifecycle.is_active and not self.in_maintenance
