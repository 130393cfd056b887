"""
Slug resolution: request path -> (slug, subpath, mapping).
"""

from typing import Tuple
from urllib.parse import unquote

from shared.logging import get_logger
from shared.errors import SlugNotFoundError
from ..adapters.mapping_store import MappingStore
from ..domain.models import SLUG_PATTERN, ResolvedSlug, SlugMapping


def split_path(raw_path: str) -> Tuple[str, str]:
    """Split a request path into its slug and the remaining subpath.

    The subpath keeps its percent-encoding so it can be forwarded verbatim;
    it is empty when the path has a single segment.
    """
    segments = [segment for segment in raw_path.split("/") if segment]
    if not segments:
        return "", ""

    slug = unquote(segments[0])
    subpath = "/" + "/".join(segments[1:]) if len(segments) > 1 else ""
    return slug, subpath


class SlugResolver:
    """Looks the first path segment up in the mapping store."""

    def __init__(self, mapping_store: MappingStore):
        self.mapping_store = mapping_store
        self.logger = get_logger("proxy.slug_resolver")

    async def resolve(self, raw_path: str) -> ResolvedSlug:
        """Resolve a path; raises SlugNotFoundError for unmapped slugs.

        Store transport failures propagate as StoreUnavailableError.
        """
        slug, subpath = split_path(raw_path)
        mapping = await self.lookup(slug)
        return ResolvedSlug(slug=slug, subpath=subpath, mapping=mapping)

    async def lookup(self, slug: str) -> SlugMapping:
        """Fetch the mapping of an already extracted slug."""
        # Anything outside the slug alphabet can never have been registered
        if not slug or not SLUG_PATTERN.match(slug):
            raise SlugNotFoundError(slug)

        mapping = await self.mapping_store.get_mapping(slug)
        if mapping is None:
            self.logger.info("Slug not found", slug=slug)
            raise SlugNotFoundError(slug)

        return mapping
