"""
Per-response rewrite context.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from ..forwarding.target_url import strip_fixed_suffix


@dataclass
class RewriteContext:
    """Everything the HTML stages need to know about one proxied response.

    ``proxy_origin`` is ``scheme://host`` of the proxy as the browser sees it;
    it is None when the request carried no trustworthy host, in which case
    absolute proxy links are left alone and the shim falls back to the page
    origin.
    """
    slug: str
    backend_base_url: str
    proxy_origin: Optional[str] = None
    backend_suffix: str = "/exec"
    keep_root_links_on_proxy: bool = False
    bootstrap_symbol: str = "goog.script.init"
    bootstrap_retry_count: int = 50
    bootstrap_retry_delay_ms: int = 100
    nonce: Optional[str] = None

    @property
    def slug_prefix(self) -> str:
        return f"/{self.slug}"

    @property
    def backend_root(self) -> str:
        """Backend base URL with the fixed suffix stripped."""
        return strip_fixed_suffix(self.backend_base_url, self.backend_suffix)

    @property
    def proxy_host(self) -> Optional[str]:
        if not self.proxy_origin:
            return None
        return urlparse(self.proxy_origin).netloc or None

    def is_under_slug(self, path: str) -> bool:
        """True for paths the proxy already routes, like ``/slug`` or ``/slug/x``."""
        prefix = self.slug_prefix
        if not path.startswith(prefix):
            return False
        rest = path[len(prefix):]
        return rest == "" or rest[0] in "/?#"

    def rewrite_root_relative(self, path: str) -> Optional[str]:
        """Absolute backend URL for a root-relative reference, or None to keep it.

        Protocol-relative URLs and a bare ``/`` are kept. Paths under the
        slug prefix are kept too, since the proxy already routes them to
        the same backend.
        """
        if len(path) < 2 or path[0] != "/" or path[1] == "/":
            return None
        if self.is_under_slug(path):
            return None
        return self.backend_root + path

    def rewrite_proxy_link(self, path: str, query: str) -> Optional[str]:
        """Backend URL for ``{proxy_origin}/{slug}{path}{query}``, or None to keep it."""
        if path and path != "/":
            return self.backend_root + path + query
        if self.keep_root_links_on_proxy:
            return None
        return self.backend_base_url + query
