"""
Outbound target URL construction.
"""

from typing import Optional
from urllib.parse import unquote_plus


def strip_fixed_suffix(backend_base_url: str, suffix: str = "/exec") -> str:
    """Drop the fixed entry suffix so sub-paths can be appended."""
    if suffix and backend_base_url.endswith(suffix):
        return backend_base_url[:-len(suffix)]
    return backend_base_url


def filter_query_string(raw_query: str, routing_param: Optional[str] = None) -> str:
    """Return the query string with its leading ``?`` (or ``""`` when empty).

    Pairs are kept byte-for-byte; only the internal routing parameter, when
    one is configured, is removed.
    """
    raw_query = raw_query.lstrip("?")
    if not raw_query:
        return ""

    if routing_param:
        kept = [
            pair for pair in raw_query.split("&")
            if unquote_plus(pair.split("=", 1)[0]) != routing_param
        ]
        raw_query = "&".join(kept)

    return f"?{raw_query}" if raw_query else ""


def build_target_url(
    backend_base_url: str,
    subpath: str,
    raw_query: str = "",
    suffix: str = "/exec",
    routing_param: Optional[str] = None,
) -> str:
    """Map a slug-relative request onto the backend.

    The slug root goes to the full entry URL; anything below it goes to the
    suffix-stripped base with the subpath appended.
    """
    query_string = filter_query_string(raw_query, routing_param)
    if not subpath:
        return backend_base_url + query_string
    return strip_fixed_suffix(backend_base_url, suffix) + subpath + query_string
