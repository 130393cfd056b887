"""
Public origin of the proxy as seen by the browser.
"""

import re
from typing import Mapping, Optional

HOST_HEADER_REGEX = re.compile(r"^[A-Za-z0-9.-]+(?::\d+)?$")


def _first_value(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split(",")[0].strip() or None


def resolve_origin(headers: Mapping[str, str], app_base_url: Optional[str] = None) -> Optional[str]:
    """Return ``scheme://host`` of the proxy, or None if it cannot be trusted.

    A configured base URL always wins. Otherwise the forwarded host (or the
    Host header) is used when it looks like a plain hostname; the scheme is
    https unless the forwarded proto says http.
    """
    if app_base_url:
        return app_base_url.rstrip("/")

    host = _first_value(headers.get("x-forwarded-host")) or _first_value(headers.get("host"))
    if not host or not HOST_HEADER_REGEX.match(host):
        return None

    proto = (_first_value(headers.get("x-forwarded-proto")) or "").lower()
    scheme = "http" if proto == "http" else "https"
    return f"{scheme}://{host}"
