import re
from datetime import datetime, date, time, timezone
from typing import Optional, Tuple

from feedback_service.models import SENTIMENTS

_DIGITS_RE = re.compile(r"^\d+$")

_FIELD_LABELS = {
    "strengths": "Strengths",
    "areas_to_improve": "Areas to improve",
    "sentiment": "Sentiment",
}


def parse_id(val) -> Optional[int]:
    """
    Accept a positive int or a string of digits. Returns None when the value
    is not a syntactically valid identifier (bools are rejected too).
    """
    if isinstance(val, bool) or val is None:
        return None
    if isinstance(val, int):
        return val if val > 0 else None
    if isinstance(val, str):
        s = val.strip()
        if _DIGITS_RE.match(s):
            n = int(s)
            return n if n > 0 else None
    return None


def check_text(field: str, val, max_len: int) -> Tuple[Optional[str], Optional[str]]:
    """
    Trim a free-text feedback field. Returns (value, error); exactly one is None.
    Text is never truncated: oversized input is an error.
    """
    label = _FIELD_LABELS.get(field, field)
    if not isinstance(val, str):
        return None, f"{label} must be a non-empty string"
    s = val.strip()
    if not s:
        return None, f"{label} must be a non-empty string"
    if len(s) > max_len:
        return None, f"{label} cannot exceed {max_len} characters"
    return s, None


def check_sentiment(val) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(val, str) and val.strip().lower() in SENTIMENTS:
        return val.strip().lower(), None
    return None, "Sentiment must be positive, neutral, or negative"


def parse_bool(val) -> Optional[bool]:
    """'true'/'false' style flags from query strings; anything else is None."""
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    s = str(val).strip().lower()
    if s in ("true", "1", "yes"):
        return True
    if s in ("false", "0", "no"):
        return False
    return None


def parse_date(val) -> Optional[date]:
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    try:
        return datetime.strptime(str(val or "").strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """UTC [start 00:00, end 23:59:59.999999] so the whole end day is included."""
    lo = datetime.combine(start, time.min, tzinfo=timezone.utc)
    hi = datetime.combine(end, time.max, tzinfo=timezone.utc)
    return lo, hi
