"""
Queue position extraction from server status text.

Servers announce the queue as e.g. "Position in queue: 412", often with
``§x`` formatting codes sprinkled between the words and the number.
"""

import re
from typing import Optional

# Handles formatting codes before the label and before the number
QUEUE_PATTERN = re.compile(
    r"(?:§.)*Position\s+in\s+queue[:\s]+(?:§.)*([0-9]+)",
    re.IGNORECASE,
)

FORMATTING_CODE = re.compile(r"§.")


def strip_formatting(text: str) -> str:
    """Remove ``§x`` formatting codes."""
    return FORMATTING_CODE.sub("", text)


def extract_queue_position(text: Optional[str]) -> Optional[int]:
    """
    Extract the queue position from a status line.

    Args:
        text: Raw status text, possibly containing formatting codes

    Returns:
        The position, or None if the text does not announce one
    """
    if not text:
        return None

    for candidate in (text, strip_formatting(text)):
        match = QUEUE_PATTERN.search(candidate)
        if match:
            return int(match.group(1))
    return None
