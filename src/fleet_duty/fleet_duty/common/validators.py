from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..core.constants import MAX_PAGE_LIMIT
from ..core.exceptions import ValidationError


def require_page(page: int, limit: int) -> tuple[int, int]:
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("page must be an integer >= 1")
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be an integer between 1 and {MAX_PAGE_LIMIT}")
    return page, limit


def require_window(start: datetime, end: datetime, *, start_name: str = "start", end_name: str = "end") -> None:
    if end <= start:
        raise ValidationError(f"{end_name} must be after {start_name}")


def require_non_negative(value: Optional[float], field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"{field_name} must be a non-negative number")
    return value
