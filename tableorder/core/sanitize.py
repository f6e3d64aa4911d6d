"""Text sanitization for free-text fields shown on staff screens."""

import html
from typing import Optional


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """HTML-escape user-supplied text (order and line notes)."""
    if value is None:
        return None
    return html.escape(value, quote=True)
