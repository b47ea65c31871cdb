from __future__ import annotations

import re

ORG_ID_MIN_LENGTH = 2
ORG_ID_MAX_LENGTH = 64
_ORG_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def normalize_org_id(value: str) -> str:
    """Lowercase and validate a tenant id taken from a header or subdomain."""
    cleaned = value.strip().lower()
    if not ORG_ID_MIN_LENGTH <= len(cleaned) <= ORG_ID_MAX_LENGTH:
        raise ValueError(f"org_id must be between {ORG_ID_MIN_LENGTH} and {ORG_ID_MAX_LENGTH} characters")
    if not _ORG_ID_RE.fullmatch(cleaned):
        raise ValueError("org_id may only contain lowercase letters, numbers, '-' and '_'")
    return cleaned
