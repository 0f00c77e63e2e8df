"""
URL canonicalization for discovered locations.

Equivalent spellings of one URL collapse to a single canonical form so
downstream deduplication keys stay stable.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = frozenset({"fbclid", "gclid", "msclkid", "mc_cid", "mc_eid", "_ga", "ref"})

DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def canonicalize_url(url: str) -> str:
    """
    Canonical form of an absolute http(s) URL.

    Lowercases scheme and host, drops default ports, fragments and
    tracking parameters, and sorts the remaining query parameters.

    Raises:
        ValueError: not an absolute http(s) URL
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or port == DEFAULT_PORTS[scheme] else f"{host}:{port}"
    if parts.username:
        credentials = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{credentials}@{netloc}"

    query_pairs = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(name)
    ]
    query = urlencode(sorted(query_pairs))

    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


def normalize_loc(raw: str) -> str | None:
    """Trimmed, canonical http(s) URL, or None when `raw` is unusable."""
    trimmed = raw.strip()
    if not trimmed:
        return None
    try:
        return canonicalize_url(trimmed)
    except ValueError:
        return None
