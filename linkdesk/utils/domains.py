"""Domain name normalization helpers."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_DOMAIN_RE = re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


def normalize_domain(value: str | None) -> str | None:
    """Reduce a URL or host to a bare lowercase domain.

    >>> normalize_domain("https://www.Example.com/blog?x=1")
    'example.com'

    Returns None when nothing domain-like is left.
    """
    if not value:
        return None

    candidate = value.strip().lower()
    if not candidate:
        return None

    if "://" not in candidate:
        candidate = f"http://{candidate}"

    host = urlparse(candidate).hostname or ""
    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]

    if not _DOMAIN_RE.match(host):
        return None
    return host


def domain_from_offering_name(name: str | None) -> str | None:
    """Derive the website domain an offering was named after.

    Offerings created by the shadow publisher import are named
    ``"<Type> - <domain>"``; older ones sometimes hold only the domain.
    """
    if not name:
        return None

    # Try the most specific segment first
    parts = [p.strip() for p in re.split(r"\s[-–|]\s", name) if p.strip()]
    for part in reversed(parts):
        domain = normalize_domain(part)
        if domain:
            return domain

    for token in reversed(name.split()):
        domain = normalize_domain(token.strip("()[],"))
        if domain:
            return domain
    return None
