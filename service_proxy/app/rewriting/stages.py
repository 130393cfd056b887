"""
HTML rewrite stages.

Each stage edits the editable regions of a DocumentFragment in place. The
pipeline runs them in a fixed order:

1. NonceExtractionStage
2. ShimInjectionStage
3. OriginLinkStage
4. RelativeLinkStage
5. AttributeLinkStage
6. BootstrapDeferralStage

Every stage is idempotent: running it on its own output changes nothing.
"""

import re
from typing import Optional, Pattern

from .context import RewriteContext
from .fragment import DEFER_END, DEFER_START, DocumentFragment
from .shim import build_shim_script


class RewriteStage:
    """Base class for pipeline stages."""

    name = "stage"

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        raise NotImplementedError


class NonceExtractionStage(RewriteStage):
    """Reuse the page's CSP nonce for the script the proxy injects."""

    name = "nonce_extraction"

    # Only a real attribute of a start tag counts, never a script variable
    NONCE_ATTRIBUTE = re.compile(
        r"""<(?:script|style|link)\b[^>]*?\snonce\s*=\s*(?:"([^"]+)"|'([^']+)'|([^\s"'>]+))""",
        re.IGNORECASE,
    )
    NONCE_SOURCE = re.compile(r"'nonce-([A-Za-z0-9+/=_-]+)'")

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        if context.nonce:
            return

        text = fragment.editable_text()
        match = self.NONCE_ATTRIBUTE.search(text)
        if match:
            context.nonce = next(group for group in match.groups() if group)
            return

        # A meta-delivered policy names the nonce as a source expression
        match = self.NONCE_SOURCE.search(text)
        if match:
            context.nonce = match.group(1)


class ShimInjectionStage(RewriteStage):
    """Insert the routing shim at the very start of ``<head>``."""

    name = "shim_injection"

    HEAD_OPEN = re.compile(r"<head(?=[\s>/])[^>]*>", re.IGNORECASE)
    HTML_OPEN = re.compile(r"<html(?=[\s>])[^>]*>", re.IGNORECASE)
    DOCTYPE = re.compile(r"^\s*<!doctype[^>]*>", re.IGNORECASE)

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        if fragment.has_shim():
            return

        script = build_shim_script(context.slug, context.proxy_origin, context.nonce)

        head = self.HEAD_OPEN.search(fragment.text)
        if head:
            fragment.insert(head.end(), script)
            return

        html_tag = self.HTML_OPEN.search(fragment.text)
        if html_tag:
            fragment.insert(html_tag.end(), f"<head>{script}</head>")
            return

        doctype = self.DOCTYPE.match(fragment.text)
        fragment.insert(doctype.end() if doctype else 0, script)


def proxy_link_pattern(context: RewriteContext) -> Optional[Pattern]:
    """Matches absolute links to ``{proxy_origin}/{slug}``; None without a proxy host."""
    host = context.proxy_host
    if not host:
        return None
    return re.compile(
        r"https?://" + re.escape(host) + "/" + re.escape(context.slug) + r"(?![\w.-])"
        r"(?P<path>/[^\"'\s?#<>]*)?(?P<query>\?[^\"'\s#<>]*)?",
        re.IGNORECASE,
    )


class OriginLinkStage(RewriteStage):
    """Point absolute proxy links at the backend.

    Sub-paths go to the suffix-stripped backend root; root forms go to the
    full entry URL, unless configured to stay on the proxy.
    """

    name = "origin_link"

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        pattern = proxy_link_pattern(context)
        if pattern is None:
            return

        def replace(match):
            rewritten = context.rewrite_proxy_link(match.group("path") or "", match.group("query") or "")
            return match.group(0) if rewritten is None else rewritten

        fragment.transform(lambda text: pattern.sub(replace, text))


class RelativeLinkStage(RewriteStage):
    """Make quoted root-relative references absolute against the backend root."""

    name = "relative_link"

    QUOTED_ROOT_RELATIVE = re.compile(r"""(?P<quote>["'])(?P<path>/[^/"'\s<>][^"'\s<>]*)(?P=quote)""")

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        def replace(match):
            rewritten = context.rewrite_root_relative(match.group("path"))
            if rewritten is None:
                return match.group(0)
            quote = match.group("quote")
            return f"{quote}{rewritten}{quote}"

        fragment.transform(lambda text: self.QUOTED_ROOT_RELATIVE.sub(replace, text))


class AttributeLinkStage(RewriteStage):
    """Catch link-bearing attributes the generic passes missed, unquoted ones included."""

    name = "attribute_link"

    ATTRIBUTE = re.compile(
        r"""(?<=\s)(?P<name>src|href|action|data-url|data-href)(?P<eq>\s*=\s*)"""
        r"""(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"'=<>`]+))""",
        re.IGNORECASE,
    )

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        pattern = proxy_link_pattern(context)

        def replace(match):
            if match.group("dq") is not None:
                value, quote = match.group("dq"), '"'
            elif match.group("sq") is not None:
                value, quote = match.group("sq"), "'"
            else:
                value, quote = match.group("bare"), ""

            rewritten = self.rewrite_value(value, context, pattern)
            if rewritten is None:
                return match.group(0)
            return f"{match.group('name')}{match.group('eq')}{quote}{rewritten}{quote}"

        fragment.transform(lambda text: self.ATTRIBUTE.sub(replace, text))

    @staticmethod
    def rewrite_value(value: str, context: RewriteContext, pattern: Optional[Pattern]) -> Optional[str]:
        """Apply the absolute-link and root-relative rules to one attribute value."""
        url, hash_sign, anchor = value.partition("#")
        if pattern is not None:
            match = pattern.fullmatch(url)
            if match:
                rewritten = context.rewrite_proxy_link(match.group("path") or "", match.group("query") or "")
                return None if rewritten is None else rewritten + hash_sign + anchor

        rewritten = context.rewrite_root_relative(value)
        return rewritten


REGEX_PRECEDERS = frozenset("(,=:[!&|?{};+-*%<>~^")
REGEX_KEYWORDS = frozenset([
    "return", "typeof", "case", "do", "else", "in", "of", "new",
    "delete", "void", "throw", "instanceof", "yield", "await",
])


def _starts_regex(text: str, index: int, start: int) -> bool:
    """Whether the ``/`` at ``index`` opens a regex literal rather than a division."""
    before = index - 1
    while before >= start and text[before].isspace():
        before -= 1
    if before < start:
        return True

    char = text[before]
    if char in REGEX_PRECEDERS:
        return True
    if char.isalnum() or char in "_$":
        word_start = before
        while word_start >= start and (text[word_start].isalnum() or text[word_start] in "_$"):
            word_start -= 1
        return text[word_start + 1:before + 1] in REGEX_KEYWORDS
    return False


def _end_of_quoted(text: str, index: int) -> Optional[int]:
    quote = text[index]
    index += 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        index += 1
    return None


def _end_of_regex(text: str, index: int) -> Optional[int]:
    in_class = False
    index += 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == "\n":
            return None
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "/":
            return index + 1
        index += 1
    return None


def find_closing_paren(text: str, open_index: int) -> Optional[int]:
    """Index of the ``)`` matching the ``(`` at ``open_index``.

    String literals, comments and regex literals are skipped so parentheses
    inside them do not count. Returns None when the call is not closed
    within ``text`` or a literal cannot be delimited; the call is then left
    as it is.
    """
    depth = 0
    index = open_index
    while index < len(text):
        char = text[index]
        if char in "\"'`":
            end = _end_of_quoted(text, index)
        elif text.startswith("//", index):
            end = text.find("\n", index)
            end = None if end == -1 else end
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = None if end == -1 else end + 2
        elif char == "/" and _starts_regex(text, index, open_index):
            end = _end_of_regex(text, index)
        else:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return index
            index += 1
            continue

        if end is None:
            return None
        index = end
    return None


class BootstrapDeferralStage(RewriteStage):
    """Wrap direct bootstrap calls in a bounded poll-and-retry guard.

    The shim runs before the platform runtime has loaded, so the bootstrap
    symbol may not exist yet when the page's own script calls it. This is
    generated client script only; the proxy does no waiting itself.
    """

    name = "bootstrap_deferral"

    def apply(self, fragment: DocumentFragment, context: RewriteContext) -> None:
        symbol = context.bootstrap_symbol
        if not symbol:
            return
        call = re.compile(r"(?<![\w$.])" + re.escape(symbol) + r"\s*\(")
        fragment.transform(lambda text: self.wrap_calls(text, call, context))

    def wrap_calls(self, text: str, call: Pattern, context: RewriteContext) -> str:
        parts = []
        position = 0
        while True:
            match = call.search(text, position)
            if not match:
                break
            close = find_closing_paren(text, match.end() - 1)
            if close is None:
                break

            end = close + 1
            semicolon = ""
            if text[end:end + 1] == ";":
                semicolon = ";"
                end += 1

            parts.append(text[position:match.start()])
            parts.append(self.guard(context, text[match.end():close], semicolon))
            position = end

        parts.append(text[position:])
        return "".join(parts)

    @staticmethod
    def availability_check(symbol: str) -> str:
        """JavaScript condition that holds once ``symbol`` is callable."""
        names = symbol.split(".")
        checks = [f'typeof {names[0]}!=="undefined"']
        for depth in range(2, len(names)):
            checks.append(".".join(names[:depth]))
        checks.append(f'typeof {symbol}==="function"')
        return "&&".join(checks)

    def guard(self, context: RewriteContext, arguments: str, semicolon: str) -> str:
        symbol = context.bootstrap_symbol
        return (
            f"{DEFER_START}(function(){{var attempts=0;function run(){{"
            f"if({self.availability_check(symbol)}){{{symbol}({arguments});}}"
            f"else if(attempts++<{context.bootstrap_retry_count}){{"
            f"setTimeout(run,{context.bootstrap_retry_delay_ms});}}}}run();}})()"
            f"{semicolon}{DEFER_END}"
        )


DEFAULT_STAGES = (
    NonceExtractionStage,
    ShimInjectionStage,
    OriginLinkStage,
    RelativeLinkStage,
    AttributeLinkStage,
    BootstrapDeferralStage,
)
