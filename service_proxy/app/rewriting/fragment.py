"""
Document fragment with proxy-owned protected regions.
"""

import re
from typing import Callable, Iterator, List, Tuple

SHIM_MARKER = "data-slug-proxy-shim"
DEFER_START = "/*slug-proxy:defer*/"
DEFER_END = "/*slug-proxy:end*/"

PROTECTED_PATTERN = re.compile(
    r"<script\b[^>]*\b" + re.escape(SHIM_MARKER) + r"\b[^>]*>.*?</script\s*>"
    + r"|" + re.escape(DEFER_START) + r".*?" + re.escape(DEFER_END),
    re.IGNORECASE | re.DOTALL,
)

SHIM_TAG_PATTERN = re.compile(r"<script\b[^>]*\b" + re.escape(SHIM_MARKER) + r"\b", re.IGNORECASE)


class DocumentFragment:
    """HTML text split into editable and protected regions.

    Protected regions are the injected shim script and the bootstrap
    deferral guards. Stages edit only the text between them, so later
    stages (and later runs of the whole pipeline) never touch what the
    proxy itself inserted.
    """

    def __init__(self, text: str):
        self.text = text

    def segments(self) -> Iterator[Tuple[str, bool]]:
        """Yield ``(text, protected)`` pairs covering the whole document."""
        position = 0
        for match in PROTECTED_PATTERN.finditer(self.text):
            if match.start() > position:
                yield self.text[position:match.start()], False
            yield match.group(0), True
            position = match.end()
        if position < len(self.text) or not self.text:
            yield self.text[position:], False

    def editable_text(self) -> str:
        """Concatenated editable text, for read-only scans."""
        return "".join(text for text, protected in self.segments() if not protected)

    def transform(self, func: Callable[[str], str]) -> None:
        """Apply ``func`` to every editable segment."""
        parts: List[str] = []
        for text, protected in self.segments():
            parts.append(text if protected else func(text))
        self.text = "".join(parts)

    def has_shim(self) -> bool:
        return SHIM_TAG_PATTERN.search(self.text) is not None

    def insert(self, index: int, snippet: str) -> None:
        self.text = self.text[:index] + snippet + self.text[index:]
