import math
from datetime import datetime, timedelta
from typing import Literal, Optional

DateRange = Literal["today", "week", "month", "year"]


def start_date_for(date_range: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Lower bound for dashboard date filters (naive UTC, like created_at)."""
    now = now or datetime.utcnow()
    if date_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == "week":
        return now - timedelta(days=7)
    if date_range == "month":
        return now - timedelta(days=30)
    if date_range == "year":
        return now - timedelta(days=365)
    return None


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
        "page": page,
        "limit": limit,
    }
