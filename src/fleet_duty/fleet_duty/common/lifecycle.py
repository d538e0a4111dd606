from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ..core.enums import LifecycleStatus


@dataclass(frozen=True)
class Lifecycle:
    """Soft-delete state shared by every persisted entity."""

    status: LifecycleStatus = LifecycleStatus.ACTIVE
    deleted_by: Optional[int] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == LifecycleStatus.ACTIVE

    def deleted(self, *, actor_id: Optional[int], at: datetime) -> "Lifecycle":
        return replace(self, status=LifecycleStatus.DELETED, deleted_by=actor_id, deleted_at=at)

    @classmethod
    def from_row(cls, row: dict) -> "Lifecycle":
        return cls(
            status=LifecycleStatus(row.get("lifecycle_status") or LifecycleStatus.ACTIVE.value),
            deleted_by=int(row["deleted_by"]) if row.get("deleted_by") is not None else None,
            deleted_at=row.get("deleted_at"),
        )
