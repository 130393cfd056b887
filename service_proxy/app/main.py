"""
Slug Proxy service: routes /{slug}/... to the mapped backend application.
"""

import asyncio
import time
from typing import Optional, Set

import httpx
import redis.asyncio as redis
from fastapi import Request, Response

from shared.base_service import BaseService
from shared.errors import ProxyLayerException, SlugNotFoundError
from shared.logging import set_proxy_context
from .adapters import BackendClient, BackendResponse, MappingStore
from .domain.embed import embed_response
from .domain.headers import HeaderPolicy, sanitize_request_headers, sanitize_response_headers
from .domain.responses import (
    apply_rate_limit_headers,
    not_found_response,
    preflight_response,
    rate_limited_response,
    relayed_response,
)
from .forwarding import ForwardBody, build_target_url
from .ratelimit import SlidingWindowRateLimiter, client_identifier
from .rewriting import ResponseRewriter, RewriteContext
from .routing.origin import resolve_origin
from .routing.slug_resolver import SlugResolver

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH"]

# Non-standard status logged when the client went away before the backend answered
CLIENT_CLOSED_REQUEST = 499


class ProxyService(BaseService):
    """Multi-tenant reverse proxy service implementation."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        backend_transport: Optional[httpx.AsyncBaseTransport] = None,
        **config_overrides,
    ):
        super().__init__("proxy", 8000, **config_overrides)

        # One shared connection pool per collaborator
        self.redis = redis_client if redis_client is not None else redis.from_url(
            self.config.redis_url,
            decode_responses=True,
        )
        self.mapping_store = MappingStore(self.redis, self.config.backend_suffix)
        self.slug_resolver = SlugResolver(self.mapping_store)
        self.rate_limiter = SlidingWindowRateLimiter(
            self.redis,
            prefix=self.config.rate_limit_prefix,
            default_limit=self.config.rate_limit_requests,
            default_window_seconds=self.config.rate_limit_window_seconds,
            fail_open=self.config.rate_limit_fail_open,
        )
        self.backend_client = BackendClient(
            timeout_seconds=self.config.proxy_timeout_seconds,
            metrics=self.metrics,
            transport=backend_transport,
        )
        self.rewriter = ResponseRewriter(metrics=self.metrics)
        self.header_policy = HeaderPolicy.from_config(self.config)
        self._background_tasks: Set[asyncio.Task] = set()

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    async def on_shutdown(self):
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        await self.backend_client.close()
        await self.redis.aclose()

    def _setup_proxy_routes(self):
        """Set up proxy routes. The catch-all route must stay last."""

        @self.app.exception_handler(SlugNotFoundError)
        async def slug_not_found_handler(request: Request, exc: SlugNotFoundError):
            self.metrics.increment_counter("proxy_requests_total", outcome="not_found")
            return not_found_response(exc.slug)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "proxy",
                "message": "Slug Proxy - multi-tenant reverse proxy",
                "version": "1.0.0"
            }

        @self.app.get("/embed/{slug}")
        async def embed(slug: str):
            """Render the backend entry URL inside a full-viewport iframe."""
            set_proxy_context(slug=slug)
            mapping = await self.slug_resolver.lookup(slug)
            self._schedule_access_count(slug)
            return embed_response(mapping, self.config.embed_cache_control)

        @self.app.options("/{full_path:path}")
        async def preflight(full_path: str):
            """Answer CORS preflight requests."""
            return preflight_response(self.header_policy)

        @self.app.api_route("/{full_path:path}", methods=PROXY_METHODS)
        async def proxy(request: Request, full_path: str):
            """Forward a request to the backend mapped to its slug."""
            return await self.handle_proxy(request)

    async def handle_proxy(self, request: Request) -> Response:
        try:
            return await self._proxy(request)
        except ProxyLayerException as e:
            if not isinstance(e, SlugNotFoundError):
                self.metrics.increment_counter("proxy_requests_total", outcome="error")
            raise
        except Exception as e:
            self.logger.error("Unexpected proxy failure", error=str(e), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            self.metrics.increment_counter("proxy_requests_total", outcome="error")
            return self.unexpected_error_response(e)

    async def _proxy(self, request: Request) -> Response:
        start_time = time.time()
        client_id = client_identifier(request)
        set_proxy_context(client_id=client_id)

        decision = await self.rate_limiter.admit(client_id)
        if not decision.allowed:
            self.metrics.increment_counter("rate_limit_hits_total", prefix=self.rate_limiter.prefix)
            self.metrics.increment_counter("proxy_requests_total", outcome="rate_limited")
            return rate_limited_response(decision)

        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else request.url.path
        resolved = await self.slug_resolver.resolve(path)
        mapping = resolved.mapping
        set_proxy_context(slug=resolved.slug)

        target_url = build_target_url(
            mapping.backend_base_url,
            resolved.subpath,
            request.scope.get("query_string", b"").decode("latin-1"),
            suffix=self.config.backend_suffix,
            routing_param=self.config.routing_query_param,
        )
        body = ForwardBody.for_request(request.method, await request.body())
        outbound_headers = sanitize_request_headers(request.headers.items(), mapping.backend_base_url)

        self.logger.info("Forwarding request", method=request.method, target_url=target_url)
        backend_response = await self._send_unless_disconnected(
            request,
            method=request.method,
            url=target_url,
            headers=outbound_headers,
            content=body.to_bytes(),
        )
        if backend_response is None:
            self.metrics.increment_counter("proxy_requests_total", outcome="client_disconnected")
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        self._schedule_access_count(resolved.slug)

        context = RewriteContext(
            slug=resolved.slug,
            backend_base_url=mapping.backend_base_url,
            proxy_origin=resolve_origin(request.headers, self.config.app_base_url),
            backend_suffix=self.config.backend_suffix,
            keep_root_links_on_proxy=self.config.keep_root_links_on_proxy,
            bootstrap_symbol=self.config.bootstrap_symbol,
            bootstrap_retry_count=self.config.bootstrap_retry_count,
            bootstrap_retry_delay_ms=self.config.bootstrap_retry_delay_ms,
        )
        content_type = backend_response.content_type
        result = self.rewriter.rewrite(backend_response.content, content_type, context)

        response = relayed_response(
            backend_response.status_code,
            sanitize_response_headers(backend_response.headers, content_type, result.rewritten, self.header_policy),
            result.body,
        )
        apply_rate_limit_headers(response, decision)

        self.metrics.increment_counter("proxy_requests_total", outcome="proxied")
        self.logger.info(
            "Proxied request",
            status_code=backend_response.status_code,
            content_type=content_type,
            rewritten=result.rewritten,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response

    async def _send_unless_disconnected(self, request: Request, **kwargs) -> Optional[BackendResponse]:
        """Issue the backend call, cancelling it if the client goes away first.

        Returns None when the call was cancelled.
        """
        if not self.config.cancel_on_disconnect:
            return await self.backend_client.send(**kwargs)

        backend_task = asyncio.ensure_future(self.backend_client.send(**kwargs))
        watcher_task = asyncio.ensure_future(self._wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait(
                {backend_task, watcher_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            backend_task.cancel()
            watcher_task.cancel()
            raise

        watcher_task.cancel()
        if backend_task in done:
            return backend_task.result()

        backend_task.cancel()
        await asyncio.gather(backend_task, return_exceptions=True)
        self.logger.info("Client disconnected, backend call cancelled", url=kwargs.get("url"))
        return None

    async def _wait_for_disconnect(self, request: Request):
        while not await request.is_disconnected():
            await asyncio.sleep(self.config.disconnect_poll_interval)

    def _schedule_access_count(self, slug: str):
        """Fire-and-forget access counter increment."""
        task = asyncio.create_task(self._increment_access_count(slug))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _increment_access_count(self, slug: str):
        try:
            await self.mapping_store.increment_access_count(slug)
        except Exception as e:
            # Lost increments are acceptable; they are never retried
            self.logger.warning("Failed to increment access count", slug=slug, error=str(e))
            self.metrics.increment_counter("access_count_failures_total")

    async def _check_dependencies(self):
        """Check proxy dependencies."""
        dependencies = {}
        dependencies["redis"] = "ok" if await self.mapping_store.health_check() else "error"

        # Rate limiter shares Redis, reuse status to avoid duplicate checks
        dependencies["rate_limit_store"] = dependencies["redis"]
        return dependencies


def create_app():
    """Create FastAPI application."""
    service = ProxyService()
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
