"""Standardized API response helpers.

List endpoints return ``{"items": [...], "total": <int>}``; single objects
are returned directly.
"""

from typing import Any, Optional


def list_response(items: list, total: Optional[int] = None, **extra: Any) -> dict:
    """Wrap a list in the standard envelope, plus any extra top-level keys."""
    return {
        "items": items,
        "total": total if total is not None else len(items),
        **extra,
    }
