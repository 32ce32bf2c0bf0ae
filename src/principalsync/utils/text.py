"""Text helpers for caller-facing messages."""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")


def sanitize_message(message: object) -> str:
    """Collapse control characters so store messages are safe to echo to callers."""
    if message is None:
        return ""
    return _CONTROL_CHARS.sub(" ", str(message)).strip()
