"""
Message header helpers: case-insensitive lookup, From-header splitting and
Gmail internalDate conversion.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, NamedTuple, Optional, Union

from app.models.email import MessageHeader

logger = logging.getLogger(__name__)

# "Display Name <address>"; anything after the closing bracket is ignored.
_FROM_PATTERN = re.compile(r"^(.*?)\s*<([^<>]*)>")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ParsedAddress(NamedTuple):
    name: str
    address: str


def get_header(headers: Iterable[MessageHeader], name: str, default: str = "") -> str:
    """Return the value of the first header named ``name`` (case-insensitive)."""
    wanted = name.lower()
    for header in headers:
        if header.name.lower() == wanted:
            return header.value
    return default


def parse_from_header(raw: str) -> ParsedAddress:
    """
    Split a From header into display name and address.

    Examples:
        'Jane Doe <jane@example.com>'   -> ('Jane Doe', 'jane@example.com')
        '"Doe, Jane" <jane@example.com>' -> ('Doe, Jane', 'jane@example.com')
        'jane@example.com'              -> ('', 'jane@example.com')
        'Jane <jane@example.com> (via List)' -> ('Jane', 'jane@example.com')

    When the value does not match the bracket pattern, the whole value is the
    address and the name is empty.
    """
    match = _FROM_PATTERN.match(raw or "")
    if not match:
        return ParsedAddress(name="", address=(raw or "").strip())

    name = match.group(1).strip()
    if len(name) >= 2 and name[0] == name[-1] == '"':
        name = name[1:-1].strip()
    return ParsedAddress(name=name, address=match.group(2).strip())


def internal_date_to_iso(value: Optional[Union[str, int]]) -> str:
    """
    Convert Gmail's internalDate (epoch milliseconds, usually a string) to an
    ISO-8601 UTC timestamp.

    Falls back to the current time when the value is missing or not a number.
    """
    try:
        millis = int(value)  # type: ignore[arg-type]
        return (_EPOCH + timedelta(milliseconds=millis)).isoformat()
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Invalid internalDate {value!r}; using current time")
        return datetime.now(timezone.utc).isoformat()
