"""
Response rewriting package for the Proxy service.

Dispatches backend bodies by content type and runs the ordered HTML
stages that keep links, scripts and network calls working behind the
proxy:

- content: content-type classification and XSSI guard handling
- fragment: document text with proxy-owned protected regions
- stages: the individual rewrite passes
- pipeline: HtmlRewritePipeline and ResponseRewriter
"""

from .content import ContentKind, classify_content_type
from .context import RewriteContext
from .pipeline import HtmlRewritePipeline, ResponseRewriter, RewriteResult

__all__ = [
    "ContentKind",
    "classify_content_type",
    "RewriteContext",
    "HtmlRewritePipeline",
    "ResponseRewriter",
    "RewriteResult",
]
