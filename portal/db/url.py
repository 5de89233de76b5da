from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_ASYNC_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "postgresql+asyncpg": "postgresql+psycopg",
    "sqlite": "sqlite+aiosqlite",
}
_SSL_OFF = {"0", "false", "no", "off", "disable"}
_SSL_MODES = {"require", "verify-ca", "verify-full"}


def normalize_database_url(url: str) -> str:
    """Point a DATABASE_URL at the async driver the service runs on.

    Hosted Postgres URLs often carry ``ssl=true``; psycopg wants ``sslmode``.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = _ASYNC_DRIVERS.get(parts.scheme, parts.scheme)
    if not scheme.startswith("postgresql"):
        # urlunsplit drops the empty netloc of sqlite:/// paths, so only the scheme is swapped.
        return url.replace(parts.scheme, scheme, 1)

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        ssl_val = query.pop(ssl_key).lower().strip()
        if ssl_val in _SSL_OFF:
            query.setdefault("sslmode", "disable")
        else:
            query.setdefault("sslmode", ssl_val if ssl_val in _SSL_MODES else "require")

    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
