import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "fleet"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "fleet_duty"),
}

SERVICE_TIMEZONE = os.getenv("SERVICE_TIMEZONE", "Asia/Dubai")
HOURS_ACCOUNTING = os.getenv("HOURS_ACCOUNTING", "start_day")

NOTIFICATION_WORKERS = int(os.getenv("NOTIFICATION_WORKERS", "4"))
NOTIFICATION_QUEUE_LIMIT = int(os.getenv("NOTIFICATION_QUEUE_LIMIT", "100"))
DASHBOARD_WORKERS = int(os.getenv("DASHBOARD_WORKERS", "6"))

FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
