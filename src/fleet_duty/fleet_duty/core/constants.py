"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_SERVICE_TIMEZONE = "Asia/Dubai"
DEFAULT_HOURS_ACCOUNTING = "start_day"

DEFAULT_AVAILABILITY_WINDOW_HOURS = 4

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

DEFAULT_UPCOMING_TRIP_REMINDER_MINUTES = 10
MIN_UPCOMING_TRIP_REMINDER_MINUTES = 1
MAX_UPCOMING_TRIP_REMINDER_MINUTES = 60

FCM_MAX_TOKENS_PER_BATCH = 500
FCM_CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"

DEFAULT_NOTIFICATION_WORKERS = 4
DEFAULT_NOTIFICATION_QUEUE_LIMIT = 100
DEFAULT_DASHBOARD_WORKERS = 6
