"""Time utilities for backend timestamp parsing and display."""

from datetime import datetime, timezone
from typing import Optional


def parse_iso_utc(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 string from the backend into an aware UTC datetime.

    Backend timestamps arrive with a 'Z' suffix, an explicit offset, or no
    zone at all (treated as UTC). Unparseable values return None.

    Args:
        value: Timestamp string, e.g. '2025-06-23T09:15:00.000Z' or '2025-06-23'

    Returns:
        Timezone-aware UTC datetime, or None
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_display_date(value: Optional[str]) -> str:
    """Format a backend timestamp as 'Jun 23, 2025, 09:15 AM', or 'N/A'."""
    dt = parse_iso_utc(value)
    if dt is None:
        return value or "N/A"
    return dt.strftime("%b %d, %Y, %I:%M %p")
