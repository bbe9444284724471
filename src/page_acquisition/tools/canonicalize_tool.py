"""Canonicalize tool - turn raw URLs into stable dedup keys."""

from urllib.parse import unquote_plus, urlsplit

TRACKING_PARAMS = frozenset({"fbclid", "gclid"})
TRACKING_PREFIX = "utm_"


def _is_tracking_param(segment: str) -> bool:
    # utm%5Fsource and utm_source name the same parameter
    name = unquote_plus(segment.split("=", 1)[0])
    return name.startswith(TRACKING_PREFIX) or name in TRACKING_PARAMS


def canonicalize_url(raw: str) -> str:
    """
    Strip the fragment and tracking query parameters from ``raw``.
    Everything before the query is kept byte for byte, so the result
    re-parses to the same scheme, host and path.
    Returns ``raw`` unchanged when it cannot be parsed as an absolute URL.
    """
    try:
        parsed = urlsplit(raw)
    except (ValueError, TypeError):
        return raw
    if not parsed.scheme:
        return raw

    base, _, query = raw.split("#", 1)[0].partition("?")
    kept = [seg for seg in query.split("&") if seg and not _is_tracking_param(seg)]
    return f"{base}?{'&'.join(kept)}" if kept else base
