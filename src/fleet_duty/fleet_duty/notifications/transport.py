from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Protocol, Sequence

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from ..core.constants import FCM_CLICK_ACTION, FCM_MAX_TOKENS_PER_BATCH
from .model import DeliveryReport

logger = logging.getLogger(__name__)


class PushTransport(Protocol):
    def deliver(self, tokens: Sequence[str], title: str, body: str, data: Mapping[str, Any]) -> DeliveryReport:
        raise NotImplementedError


def _stringify(data: Mapping[str, Any]) -> dict[str, str]:
    # FCM data payloads only carry string values
    payload = {str(k): "" if v is None else str(v) for k, v in data.items()}
    payload["click_action"] = FCM_CLICK_ACTION
    return payload


class FirebasePushTransport(PushTransport):
    """Firebase Cloud Messaging delivery, best effort."""

    def __init__(self, credentials_path: Optional[str] = None, *, batch_size: int = FCM_MAX_TOKENS_PER_BATCH):
        self._credentials_path = credentials_path
        self._batch_size = min(int(batch_size), FCM_MAX_TOKENS_PER_BATCH)
        self._app = None
        self._initialized = False

    def initialize(self) -> bool:
        """Initialize Firebase Admin SDK"""
        if self._initialized:
            return True

        if not self._credentials_path or not os.path.exists(self._credentials_path):
            logger.warning("Firebase service account key not found. Push notifications disabled.")
            return False

        if not firebase_admin._apps:
            self._app = firebase_admin.initialize_app(credentials.Certificate(self._credentials_path))
            logger.info("Firebase Admin SDK initialized successfully")
        else:
            self._app = firebase_admin.get_app()
        self._initialized = True
        return True

    def deliver(self, tokens: Sequence[str], title: str, body: str, data: Mapping[str, Any]) -> DeliveryReport:
        if not tokens:
            return DeliveryReport()
        if not self.initialize():
            return DeliveryReport(failure_count=len(tokens), failed_tokens=tuple(tokens))

        payload = _stringify(data)
        success = 0
        failed: list[str] = []
        for start in range(0, len(tokens), self._batch_size):
            batch = list(tokens[start : start + self._batch_size])
            message = messaging.MulticastMessage(
                tokens=batch,
                notification=messaging.Notification(title=title, body=body),
                data=payload,
            )
            try:
                response = messaging.send_each_for_multicast(message, app=self._app)
            except (firebase_exceptions.FirebaseError, ValueError) as e:
                logger.error("FCM batch of %d tokens failed: %s", len(batch), e)
                failed.extend(batch)
                continue
            success += response.success_count
            failed.extend(token for token, resp in zip(batch, response.responses) if not resp.success)

        if failed:
            logger.warning("FCM delivery: %d sent, %d failed", success, len(failed))
        return DeliveryReport(success_count=success, failure_count=len(failed), failed_tokens=tuple(failed))
