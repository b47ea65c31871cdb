from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_label_text(value: str | None) -> str | None:
    """Trim and collapse internal whitespace; empty input becomes None."""
    if value is None:
        return None
    cleaned = _WHITESPACE_RE.sub(" ", str(value)).strip()
    return cleaned or None


def require_text(value: str | None) -> str:
    cleaned = normalize_label_text(value)
    if not cleaned:
        raise ValueError("must not be empty")
    return cleaned
