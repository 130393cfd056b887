"""
Rate limiting package for the Proxy service.

Holds the sliding window limiter that enforces per-client request budgets
against the shared Redis instance.
"""

from .sliding_window import SlidingWindowRateLimiter, client_identifier

__all__ = ["SlidingWindowRateLimiter", "client_identifier"]
