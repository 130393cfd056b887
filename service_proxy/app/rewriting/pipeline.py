"""
Response rewriting: content-type dispatch and the HTML pipeline.
"""

import codecs
from dataclasses import dataclass
from typing import Iterable, Optional

from shared.logging import get_logger
from shared.errors import RewriteError
from shared.metrics import MetricsCollector
from .content import (
    ContentKind,
    classify_content_type,
    detect_charset,
    strip_xssi_guard,
    strip_xssi_guard_bytes,
)
from .context import RewriteContext
from .fragment import DocumentFragment
from .stages import DEFAULT_STAGES, RewriteStage


@dataclass
class RewriteResult:
    """Body to send downstream and whether it differs from the backend's."""
    body: bytes
    rewritten: bool
    kind: ContentKind


class HtmlRewritePipeline:
    """Runs the HTML stages in their fixed order."""

    def __init__(self, stages: Optional[Iterable[RewriteStage]] = None):
        self.stages = list(stages) if stages is not None else [stage() for stage in DEFAULT_STAGES]

    def run(self, html: str, context: RewriteContext) -> str:
        fragment = DocumentFragment(html)
        for stage in self.stages:
            try:
                stage.apply(fragment, context)
            except Exception as e:
                raise RewriteError(
                    f"Stage {stage.name} failed: {e}",
                    details={"stage": stage.name}
                ) from e
        return fragment.text


class ResponseRewriter:
    """Transforms backend bodies by content type.

    The result is computed on a decoded copy. If decoding or any stage
    fails, the original bytes are returned untouched.
    """

    def __init__(
        self,
        pipeline: Optional[HtmlRewritePipeline] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.pipeline = pipeline or HtmlRewritePipeline()
        self.metrics = metrics
        self.logger = get_logger("proxy.rewriter")

    def rewrite(self, content: bytes, content_type: str, context: RewriteContext) -> RewriteResult:
        kind = classify_content_type(content_type)

        if kind is ContentKind.BINARY:
            return RewriteResult(body=content, rewritten=False, kind=kind)

        if kind is ContentKind.JSON:
            body = strip_xssi_guard_bytes(content)
            return RewriteResult(body=body, rewritten=body != content, kind=kind)

        charset = detect_charset(content_type)
        try:
            text = self._decode(content, charset)
            if kind is ContentKind.HTML:
                text = self.pipeline.run(text, context)
            else:
                text = strip_xssi_guard(text)
            body = text.encode(charset)
        except (UnicodeError, LookupError, RewriteError) as e:
            self.logger.warning(
                "Rewrite failed, forwarding original body",
                slug=context.slug,
                content_type=content_type,
                error=str(e),
            )
            self._record(kind, "fallback")
            return RewriteResult(body=content, rewritten=False, kind=kind)

        self._record(kind, "rewritten")
        return RewriteResult(body=body, rewritten=body != content, kind=kind)

    @staticmethod
    def _decode(content: bytes, charset: str) -> str:
        # A UTF-8 BOM would otherwise end up in front of the injected shim
        if charset.replace("-", "").replace("_", "") == "utf8" and content.startswith(codecs.BOM_UTF8):
            content = content[len(codecs.BOM_UTF8):]
        return content.decode(charset)

    def _record(self, kind: ContentKind, outcome: str) -> None:
        if self.metrics and kind is ContentKind.HTML:
            self.metrics.increment_counter("html_rewrites_total", outcome=outcome)
