"""
Forwarding package for the Proxy service.

Builds the outbound target URL and carries the request body variant to
the backend client.
"""

from .body import BodyKind, ForwardBody
from .target_url import build_target_url, filter_query_string, strip_fixed_suffix

__all__ = [
    "BodyKind",
    "ForwardBody",
    "build_target_url",
    "filter_query_string",
    "strip_fixed_suffix",
]
