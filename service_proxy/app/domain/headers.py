"""
Header policies for both directions of a proxied exchange.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ..rewriting.content import ContentKind, classify_content_type, is_script_or_style

Headers = List[Tuple[str, str]]

# RFC 7230 section 6.1 plus the legacy proxy variants
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

REQUEST_DROP_HEADERS = HOP_BY_HOP_HEADERS | frozenset({
    "content-length",
    "host",
    "accept-encoding",
    "forwarded",
    "via",
    "x-real-ip",
    "x-amzn-trace-id",
    "origin",
    "referer",
})

# Forwarding-chain and hosting-platform headers reveal the proxy's infrastructure
REQUEST_DROP_PREFIXES = ("x-forwarded-", "x-vercel-", "cf-", "x-envoy-", "fly-")

RESPONSE_DROP_HEADERS = HOP_BY_HOP_HEADERS | frozenset({
    "content-encoding",
    "content-length",
})

CSP_HEADERS = frozenset({
    "content-security-policy",
    "content-security-policy-report-only",
})


@dataclass
class HeaderPolicy:
    """CORS and cache settings applied to every proxied response."""
    cors_allow_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "PUT", "PATCH", "OPTIONS"])
    cors_allow_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    html_cache_control: str = "public, s-maxage=60, stale-while-revalidate=120"
    asset_cache_control: str = "public, max-age=31536000, immutable"

    @classmethod
    def from_config(cls, config) -> "HeaderPolicy":
        return cls(
            cors_allow_methods=list(config.cors_allow_methods),
            cors_allow_headers=list(config.cors_allow_headers),
            html_cache_control=config.html_cache_control,
            asset_cache_control=config.asset_cache_control,
        )

    def cors_headers(self) -> Headers:
        return [
            ("Access-Control-Allow-Origin", "*"),
            ("Access-Control-Allow-Methods", ", ".join(self.cors_allow_methods)),
            ("Access-Control-Allow-Headers", ", ".join(self.cors_allow_headers)),
        ]


def _connection_tokens(headers: Iterable[Tuple[str, str]]) -> set:
    """Header names listed in Connection, which are hop-by-hop as well."""
    tokens = set()
    for name, value in headers:
        if name.lower() == "connection":
            tokens.update(token.strip().lower() for token in value.split(",") if token.strip())
    return tokens


def sanitize_request_headers(headers: Iterable[Tuple[str, str]], backend_entry_url: str) -> Headers:
    """Client headers minus hop-by-hop and infrastructure ones.

    ``Origin`` and ``Referer`` are replaced by the backend entry URL so the
    backend's own origin checks pass.
    """
    headers = list(headers)
    extra_hop_by_hop = _connection_tokens(headers)

    sanitized: Headers = []
    for name, value in headers:
        lowered = name.lower()
        if lowered in REQUEST_DROP_HEADERS or lowered in extra_hop_by_hop:
            continue
        if lowered.startswith(REQUEST_DROP_PREFIXES):
            continue
        sanitized.append((name, value))

    sanitized.append(("Origin", backend_entry_url))
    sanitized.append(("Referer", backend_entry_url))
    return sanitized


def sanitize_response_headers(
    headers: Iterable[Tuple[str, str]],
    content_type: str,
    rewritten: bool,
    policy: HeaderPolicy,
) -> Headers:
    """Backend headers made safe to relay, with CORS and cache policy applied.

    Content-Length is left out; the response framework computes it from the
    final body.
    """
    headers = list(headers)
    extra_hop_by_hop = _connection_tokens(headers)
    kind = classify_content_type(content_type)
    is_html = kind is ContentKind.HTML
    cache_control = None
    if is_html:
        cache_control = policy.html_cache_control
    elif is_script_or_style(content_type):
        cache_control = policy.asset_cache_control

    sanitized: Headers = []
    for name, value in headers:
        lowered = name.lower()
        if lowered in RESPONSE_DROP_HEADERS or lowered in extra_hop_by_hop:
            continue
        if lowered.startswith("access-control-allow-"):
            continue
        # The injected shim has to run regardless of the backend's policy
        if is_html and rewritten and lowered in CSP_HEADERS:
            continue
        if cache_control and lowered == "cache-control":
            continue
        sanitized.append((name, value))

    sanitized.extend(policy.cors_headers())
    if cache_control:
        sanitized.append(("Cache-Control", cache_control))
    return sanitized
