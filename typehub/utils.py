from typing import Optional, Tuple
from datetime import datetime, timezone
import math
import time


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_amount_display(amount_paise: int) -> str:
    """Format paise for display (e.g., 8900 -> ₹89, 12350 -> ₹123.50)"""
    rupees, paise = divmod(amount_paise, 100)
    if paise == 0:
        return f"₹{rupees}"
    return f"₹{rupees}.{paise:02d}"


def clamp_pagination(page: Optional[int], limit: Optional[int], default_limit: int, max_limit: int) -> Tuple[int, int]:
    """Clamp page to >= 1 and limit to 1..max_limit, falling back to defaults"""
    page = page if page and page > 0 else 1
    if not limit or limit < 1:
        limit = default_limit
    return page, min(max_limit, limit)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def make_receipt(user_id: str) -> str:
    """Razorpay receipts are capped at 40 characters"""
    receipt = f"th_{user_id.replace('-', '')[-12:]}_{int(time.time() * 1000):x}"
    return receipt[:40]
