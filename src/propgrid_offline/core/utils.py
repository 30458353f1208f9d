from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from urllib.parse import urljoin, urlsplit


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def normalize_url(url: str, origin: str) -> str:
    """Resolve ``url`` against ``origin`` and drop any fragment."""
    absolute = urljoin(origin.rstrip("/") + "/", url)
    parts = urlsplit(absolute)
    path = parts.path or "/"
    query = f"?{parts.query}" if parts.query else ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}{query}"


def hash_url(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()
