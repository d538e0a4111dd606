import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "fleet_duty"),
}

SERVICE_TIMEZONE = os.getenv("SERVICE_TIMEZONE", "Asia/Dubai")

# "start_day" or "split"
HOURS_ACCOUNTING = os.getenv("HOURS_ACCOUNTING", "start_day")

NOTIFICATION_WORKERS = int(os.getenv("NOTIFICATION_WORKERS", "2"))
NOTIFICATION_QUEUE_LIMIT = int(os.getenv("NOTIFICATION_QUEUE_LIMIT", "50"))
DASHBOARD_WORKERS = int(os.getenv("DASHBOARD_WORKERS", "4"))

# Path to the Firebase service account JSON; push is disabled when missing
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "firebase-service-account.json")

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, schema.sql is applied on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
