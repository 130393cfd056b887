"""
Proxy Service package for the Slug Proxy.

The proxy maps the first path segment (the slug) to a tenant backend and
relays the request, enforcing:
- Rate limiting: per-client sliding window in Redis
- Slug resolution: one keyed read against the mapping store
- Response rewriting: HTML links, scripts and network calls kept on the proxy

Structure:
- app.main: FastAPI app, routes, and request flow wiring.
- app.adapters: Redis mapping store and backend HTTP client.
- app.routing: Slug resolution and public origin detection.
- app.ratelimit: Sliding window limiter.
- app.forwarding: Target URL construction and request body variant.
- app.rewriting: Content-type dispatch and the HTML stage pipeline.
- app.domain: Models, header policies and the proxy's own responses.
"""
