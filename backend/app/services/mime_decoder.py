"""
MIME body decoder.

Walks a message's BodyPart tree and pulls out the first text/plain and the
first text/html body, decoding Gmail's URL-safe base64 payloads.

Pure functions: no I/O, no state. A part that fails to decode is logged and
skipped so that a broken HTML part never hides a good plain-text part found
elsewhere in the tree.
"""

import base64
import binascii
import logging
from typing import Optional

from app.models.email import BodyPart

logger = logging.getLogger(__name__)

PLAIN_TEXT_TYPE = "text/plain"
HTML_TYPE = "text/html"


class DecodeError(Exception):
    """Raised when a body payload is not valid URL-safe base64."""


def decode_base64url(data: str) -> str:
    """
    Decode a URL-safe base64 string ('-' and '_' instead of '+' and '/') to text.

    Gmail strips the trailing '=' padding, so it is restored before decoding.
    Bytes are interpreted as UTF-8; undecodable sequences become U+FFFD rather
    than failing the whole part.

    Raises:
        DecodeError: if the alphabet or length is invalid.
    """
    cleaned = data.strip()
    if len(cleaned.rstrip("=")) % 4 == 1:
        raise DecodeError(f"Invalid base64url length: {len(cleaned)}")

    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64url payload: {e}") from e

    return raw.decode("utf-8", errors="replace")


class _BodySlots:
    """Accumulates the first plain-text and first HTML body found."""

    def __init__(self) -> None:
        self.plain_text: Optional[str] = None
        self.html_text: Optional[str] = None

    def offer(self, part: BodyPart) -> bool:
        """
        Try to fill a slot from ``part``.

        Returns True when the part is a text/plain or text/html leaf with a
        payload, whether or not it filled (or managed to decode into) a slot.
        """
        if part.payload is None:
            return False

        if part.mime_type == PLAIN_TEXT_TYPE:
            if self.plain_text is None:
                self.plain_text = _decode_part(part)
            return True

        if part.mime_type == HTML_TYPE:
            if self.html_text is None:
                self.html_text = _decode_part(part)
            return True

        return False


def _decode_part(part: BodyPart) -> Optional[str]:
    try:
        return decode_base64url(part.payload or "")
    except DecodeError as e:
        logger.warning(f"Skipping undecodable {part.mime_type} part: {e}")
        return None


def _walk(part: BodyPart, slots: _BodySlots) -> None:
    # Depth-first, pre-order, children in document order.
    stack = [part]
    while stack:
        current = stack.pop()
        if slots.offer(current):
            continue
        stack.extend(reversed(current.children))


def extract_bodies(root: BodyPart) -> tuple[str, str]:
    """
    Extract (plain_text, html_text) from a message's root BodyPart.

    Rules:
      - The first text/plain and the first text/html part with a payload win;
        later parts of the same type never overwrite them.
      - A single-part message (payload on the root, no children) is decoded
        directly when its type is text/plain or text/html.
      - Unknown MIME types are ignored.
      - A part that fails to decode leaves its slot empty and traversal goes on,
        so a later part of the same type may still fill it.

    Both values default to "" when absent.
    """
    slots = _BodySlots()

    if root.children:
        for child in root.children:
            _walk(child, slots)
    else:
        slots.offer(root)

    return slots.plain_text or "", slots.html_text or ""
