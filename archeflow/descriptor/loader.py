"""Descriptor cache.

Parsed documents are immutable, so one cache can be shared by every
archetype compiled in a process. Entries are keyed by canonical path.
"""

import logging
from pathlib import Path

from ..core.models import DescriptorDocument
from .builder import build_document
from .xml_reader import read_parse_tree

logger = logging.getLogger(__name__)


class DescriptorCache:
    """Explicit cache of DescriptorDocuments keyed by canonical file path."""

    def __init__(self) -> None:
        self._documents: dict[Path, DescriptorDocument] = {}

    def __contains__(self, path: Path | str) -> bool:
        return Path(path).resolve() in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def load(self, path: Path | str) -> DescriptorDocument:
        """Return the document at ``path``, parsing it on first use.

        Raises:
            DescriptorLoadError: If the file is missing or malformed
        """
        key = Path(path).resolve()
        document = self._documents.get(key)
        if document is None:
            logger.debug("Loading descriptor %s", key)
            document = build_document(read_parse_tree(key))
            self._documents[key] = document
        return document

    def invalidate(self, path: Path | str | None = None) -> None:
        """Drop one cached document, or all of them when path is None."""
        if path is None:
            self._documents.clear()
        else:
            self._documents.pop(Path(path).resolve(), None)


_default_cache = DescriptorCache()


def get_cache() -> DescriptorCache:
    """Process-wide cache used when callers do not pass their own."""
    return _default_cache
