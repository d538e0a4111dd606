from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from ..common.lifecycle import Lifecycle
from ..core.enums import NotificationType, Role
from .preferences import PreferenceSettings, settings_allow


@dataclass(frozen=True)
class NotificationPreference:
    user_id: int
    role: Role
    settings: PreferenceSettings
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def receive_notification(self) -> bool:
        return bool(self.settings.receive_notification)

    def allows(self, notification_types: Iterable[NotificationType]) -> bool:
        return self.lifecycle.is_active and settings_allow(self.settings, notification_types)


@dataclass(frozen=True)
class DeliveryReport:
    success_count: int = 0
    failure_count: int = 0
    failed_tokens: tuple[str, ...] = ()


@dataclass(frozen=True)
class NotificationRecord:
    """One delivered notification as kept in a user's history."""

    notification_id: int
    user_id: int
    title: str
    body: str
    created_at: datetime
    data: Mapping[str, Any] = field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None
    lifecycle: Lifecycle = field(default_factory=Lifecycle)
