"""
Text helpers shared by classification and view filtering.
"""

import re
from datetime import datetime, timezone
from typing import Optional, Union

from panel_chat.constants import CHAT_LINE_PREFIXES

_COLOR_CODE = re.compile(r'\^[0-9a-zA-Z]')


def strip_colors(text: Optional[str]) -> str:
    """Remove in-band color codes (``^1``, ``^a`` ...) from text."""
    if not text:
        return ''
    return _COLOR_CODE.sub('', text)


def has_chat_prefix(raw: Optional[str]) -> bool:
    """Return True when a raw console line is a player chat broadcast."""
    if not raw:
        return False
    return raw.lower().startswith(CHAT_LINE_PREFIXES)


def same_player_name(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two display names with color codes removed."""
    return strip_colors(left) == strip_colors(right)


def parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """Parse a relay timestamp, falling back to the current time."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    return now()


def now() -> datetime:
    """Current local time, timezone aware."""
    return datetime.now(timezone.utc).astimezone()


def format_time(timestamp: datetime) -> str:
    """Render a timestamp as 24-hour local time."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    return timestamp.strftime('%H:%M:%S')
