"""
Content-type dispatch for backend response bodies.
"""

import re
from enum import Enum

# Anti-JSON-hijacking prefix some backends put in front of JSON payloads
XSSI_GUARD = ")]}'"

_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


class ContentKind(str, Enum):
    """Rewrite strategy selected for a response body."""
    HTML = "html"
    TEXT = "text"
    JSON = "json"
    BINARY = "binary"


def media_type(content_type: str) -> str:
    """Lowercased media type without parameters."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def classify_content_type(content_type: str) -> ContentKind:
    """Pick the rewrite strategy for a Content-Type header value."""
    media = media_type(content_type)
    if media == "text/html":
        return ContentKind.HTML
    if media == "application/json" or media.endswith("+json"):
        return ContentKind.JSON
    if media.startswith("text/"):
        return ContentKind.TEXT
    return ContentKind.BINARY


def is_script_or_style(content_type: str) -> bool:
    """True for JavaScript and CSS assets."""
    media = media_type(content_type)
    return "javascript" in media or "ecmascript" in media or media == "text/css"


def detect_charset(content_type: str, default: str = "utf-8") -> str:
    """Charset parameter of a Content-Type value, or the default."""
    match = _CHARSET_RE.search(content_type or "")
    return match.group(1).lower() if match else default


def strip_xssi_guard(text: str) -> str:
    """Remove the guard prefix and the line break that follows it."""
    if not text.startswith(XSSI_GUARD):
        return text
    text = text[len(XSSI_GUARD):]
    if text.startswith("\r\n"):
        return text[2:]
    if text.startswith("\n"):
        return text[1:]
    return text


def strip_xssi_guard_bytes(content: bytes) -> bytes:
    """Byte-level variant used for JSON bodies that are otherwise untouched."""
    guard = XSSI_GUARD.encode("ascii")
    if not content.startswith(guard):
        return content
    content = content[len(guard):]
    if content.startswith(b"\r\n"):
        return content[2:]
    if content.startswith(b"\n"):
        return content[1:]
    return content
