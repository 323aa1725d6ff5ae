"""Text parsing helpers for LinkedIn person cards."""

import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# Most specific first.
MUTUAL_COUNT_PATTERNS = [
    re.compile(r"\w+\s+and\s+(\d+)\s+other\s+mutual\s+connections?"),
    re.compile(r"and\s+(\d+)\s+other\s+mutual\s+connections?"),
    re.compile(r"(\d+)\s+mutual\s+connections?"),
    re.compile(r"(\d+)\s+other"),
]

MUTUAL_INFO_PATTERNS = [
    re.compile(r"mutual\s+connections?"),
    re.compile(r"other\s+mutual"),
    re.compile(r"shared\s+connections?"),
]

_THOUSANDS_SEPARATOR = re.compile(r"(?<=\d),(?=\d{3}\b)")
_NAME_PREFIX = re.compile(r"^(connect with|view profile of)\s+", re.IGNORECASE)
_NAME_SUFFIX = re.compile(r"\s+(connect|view profile)$", re.IGNORECASE)
_DEGREE_SUFFIX = re.compile(r"\s*[·•]?\s*\d+(st|nd|rd|th)\+?\s*$", re.IGNORECASE)
_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def parse_mutual_connection_count(text: Optional[str]) -> int:
    """Parse the mutual connection count out of card text.

    Handles "Jane and 12 other mutual connections", "and 1 other mutual
    connection", "5 mutual connections" and similar. Returns 0 when nothing
    matches; a missing count is never an error.
    """
    if not text:
        return 0

    clean_text = _THOUSANDS_SEPARATOR.sub("", text.strip().lower())
    for pattern in MUTUAL_COUNT_PATTERNS:
        match = pattern.search(clean_text)
        if match:
            count = int(match.group(1))
            logger.debug(f"Parsed {count} mutual connections from '{clean_text}' using {pattern.pattern!r}")
            return count

    logger.debug(f"No mutual connection count in '{clean_text}'")
    return 0


def contains_mutual_connection_info(text: Optional[str]) -> bool:
    if not text:
        return False
    clean_text = text.strip().lower()
    return any(pattern.search(clean_text) for pattern in MUTUAL_INFO_PATTERNS)


def extract_connection_name(text: Optional[str]) -> str:
    """Take the person's name from the first non-empty line of the card text."""
    if not text:
        return ""

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return ""

    name = _NAME_PREFIX.sub("", lines[0])
    name = _NAME_SUFFIX.sub("", name)
    name = _DEGREE_SUFFIX.sub("", name)
    return name.strip()


def make_card_id(name: str, position: Tuple[float, float]) -> str:
    """Deterministic within-run id from a name and a scroll-independent position."""
    slug = _SLUG_CHARS.sub("-", name.lower()).strip("-") or "unknown"
    x, y = position
    return f"{slug}-{round(x)}-{round(y)}"
