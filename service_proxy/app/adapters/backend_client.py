"""
HTTP client for the mapped backend applications.
"""

from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx

from shared.logging import get_logger
from shared.errors import UpstreamError, UpstreamTimeoutError
from shared.metrics import MetricsCollector


@dataclass
class BackendResponse:
    """Fully buffered backend response."""
    status_code: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    content: bytes = b""
    url: str = ""

    def header(self, name: str, default: str = "") -> str:
        """First value of a header, case-insensitive."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default

    @property
    def content_type(self) -> str:
        return self.header("content-type")


class BackendClient:
    """Issues exactly one outbound call per proxied request.

    Redirects are followed transparently. Failures are never retried, so
    non-idempotent methods are not replayed against the backend.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = get_logger("proxy.backend_client")
        self.metrics = metrics
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: List[Tuple[str, str]],
        content: Optional[bytes] = None,
    ) -> BackendResponse:
        """Send a request and read the whole body before returning."""
        timer = (
            self.metrics.time_operation("upstream_request_duration_seconds", method=method)
            if self.metrics else nullcontext()
        )
        try:
            with timer:
                response = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    content=content,
                )
        except httpx.TimeoutException as e:
            self.logger.error("Backend request timed out", method=method, url=url, error=str(e))
            raise UpstreamTimeoutError(str(e) or "Upstream request timed out", details={"url": url}) from e
        except httpx.HTTPError as e:
            self.logger.error("Backend request failed", method=method, url=url, error=str(e))
            raise UpstreamError(str(e) or type(e).__name__, details={"url": url}) from e

        self.logger.debug(
            "Backend responded",
            method=method,
            url=url,
            status_code=response.status_code,
            final_url=str(response.url),
        )
        return BackendResponse(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            content=response.content,
            url=str(response.url),
        )

    async def close(self):
        """Close pooled connections."""
        await self._client.aclose()
