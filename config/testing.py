import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "fleet_duty_test"),
}

SERVICE_TIMEZONE = "Asia/Dubai"
HOURS_ACCOUNTING = os.getenv("HOURS_ACCOUNTING", "start_day")

NOTIFICATION_WORKERS = 1
NOTIFICATION_QUEUE_LIMIT = 10
DASHBOARD_WORKERS = 2

FIREBASE_CREDENTIALS = None

LOG_LEVEL = "WARNING"
TESTING = True

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
