from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Vehicle


class VehicleRepository(Protocol):
    def get_active(self, vehicle_id: int) -> Optional[Vehicle]:
        raise NotImplementedError

    def list_active(self) -> Sequence[Vehicle]:
        raise NotImplementedError

    def count_active(self) -> int:
        raise NotImplementedError

    def get_by_id(self, vehicle_id: int) -> Optional[Vehicle]:
        raise NotImplementedError
