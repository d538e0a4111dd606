from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import Role
from .model import User


class UserRepository(Protocol):
    def get_by_id(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_active_driver(self, driver_id: int) -> Optional[User]:
        """Return the user only when active and holding the driver role."""

        raise NotImplementedError

    def list_active_by_ids(self, user_ids: Iterable[int]) -> Sequence[User]:
        raise NotImplementedError

    def list_active_by_roles(self, roles: Iterable[Role], *, exclude_ids: Iterable[int] = ()) -> Sequence[User]:
        raise NotImplementedError

    def count_active_drivers(self) -> int:
        raise NotImplementedError
