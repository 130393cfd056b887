"""
Domain package for the Proxy service.

Data models, header policies and the proxy's own responses (not-found
page, rate limit answers, CORS preflight, embed page).
"""

from .models import SLUG_PATTERN, SlugMapping, ResolvedSlug, RateLimitDecision

__all__ = [
    "SLUG_PATTERN",
    "SlugMapping",
    "ResolvedSlug",
    "RateLimitDecision",
]
