from __future__ import annotations

import importlib
import logging

from dotenv import load_dotenv

from config import get_settings_module

from .common.logging_config import configure_logging
from .container import Container, build_container
from .database.bootstrap import apply_schema

logger = logging.getLogger(__name__)


def create_container() -> Container:
    """Load settings for APP_ENV, configure logging and wire the services."""
    load_dotenv(override=False)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    db_config = getattr(settings, "DB_CONFIG")
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config)

    return build_container(
        db_config=db_config,
        service_timezone=getattr(settings, "SERVICE_TIMEZONE", "Asia/Dubai"),
        hours_accounting=getattr(settings, "HOURS_ACCOUNTING", "start_day"),
        notification_workers=int(getattr(settings, "NOTIFICATION_WORKERS", 4)),
        notification_queue_limit=int(getattr(settings, "NOTIFICATION_QUEUE_LIMIT", 100)),
        dashboard_workers=int(getattr(settings, "DASHBOARD_WORKERS", 6)),
        firebase_credentials=getattr(settings, "FIREBASE_CREDENTIALS", None),
    )
