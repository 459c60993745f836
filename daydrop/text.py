"""Plain-text cleanup for admin and viewer supplied text."""

from __future__ import annotations

from typing import Optional

import bleach


def clean_text(value: Optional[str]) -> str:
    """Strip markup and surrounding whitespace; the frontend renders text verbatim."""
    if not value:
        return ""
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
    return cleaned.replace("\r\n", "\n").strip()
