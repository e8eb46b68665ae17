"""Provide utility helpers for timestamps and text normalization."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from .constants import SLUG_MAX_LENGTH


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def slugify(text: str) -> str:
    """Convert free text into a filename-safe slug.

    Args:
        text: Arbitrary plan name or description.

    Returns:
        A lowercase, hyphen-separated slug of at most 50 characters.
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:SLUG_MAX_LENGTH]


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "..."
