# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Timezone utilities - every timestamp in the bridge is an aware UTC datetime
"""
from datetime import datetime
import pytz
from typing import Optional, Union


def utc_now() -> datetime:
    """Get current time in UTC"""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert a datetime to aware UTC, treating naive values as UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) from a provider into aware UTC.

    Returns None for missing or unparseable values so callers can treat the
    item as "not yet schedulable".
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        # Graph returns seven fractional digits, which fromisoformat rejects on older interpreters
        if '.' not in text:
            return None
        head, _, tail = text.partition('.')
        digits = ''.join(ch for ch in tail if ch.isdigit())
        offset = tail[len(digits):]
        try:
            parsed = datetime.fromisoformat(f"{head}.{digits[:6]}{offset}")
        except ValueError:
            return None

    return ensure_utc(parsed)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as an ISO string in UTC"""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def format_display(dt: Optional[datetime]) -> str:
    """Format datetime for log and notification display"""
    if dt is None:
        return "Never"
    return ensure_utc(dt).strftime('%b %d, %Y at %I:%M %p UTC')
