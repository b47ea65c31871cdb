from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SSL_OFF = {"0", "false", "no", "off", "disable"}
_SSL_STRICT = {"require", "verify-ca", "verify-full"}


def normalize_database_url(url: str) -> str:
    """Point plain postgres URLs at asyncpg and fold ``sslmode`` into ``ssl``."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme

    if scheme in {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        scheme = "postgresql+asyncpg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    if scheme == "postgresql+asyncpg":
        ssl_key = next((key for key in query if key.lower() in {"ssl", "sslmode"}), None)
        if ssl_key is not None:
            normalized = query.pop(ssl_key).lower().strip()
            if normalized in _SSL_OFF:
                query["ssl"] = "disable"
            elif normalized in _SSL_STRICT:
                query["ssl"] = normalized
            else:
                query["ssl"] = "require"

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
