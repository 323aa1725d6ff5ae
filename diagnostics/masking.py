from __future__ import annotations

import logging
import re
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS = [
    r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}",
]


def mask_pii(text: str, patterns: Iterable[str], secrets: Iterable[str] = ()) -> str:
    """Replace emails, configured patterns and literal secrets (e.g. the password) with ***."""
    masked = text
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, "***")

    for pat in DEFAULT_PATTERNS + list(patterns or []):
        try:
            masked = re.sub(pat, "***", masked, flags=re.IGNORECASE)
        except re.error as e:
            logger.warning(f"Ignoring invalid PII mask pattern {pat!r}: {e}")
    return masked
