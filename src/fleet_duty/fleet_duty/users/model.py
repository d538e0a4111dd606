from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..common.lifecycle import Lifecycle
from ..core.enums import Role


@dataclass(frozen=True)
class User:
    user_id: int
    name: str
    role: Role
    phone: Optional[str] = None
    device_tokens: tuple[str, ...] = ()
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def is_active(self) -> bool:
        return self.lifecycle.is_active

    @property
    def is_driver(self) -> bool:
        return self.role == Role.DRIVER
