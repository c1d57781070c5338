"""Path utilities for archeflow.

Two kinds of paths are handled here:

- Choice paths: dot-separated chains of flow node ids (``app.tracing``),
  resolved against a current scope with ``ROOT.`` / ``PARENT.`` prefixes
  and an optional common prefix.
- File paths: descriptor ``src`` references resolved relative to the
  descriptor that contains them.
"""

import re
from collections.abc import Iterable
from pathlib import Path

from ..errors import InvalidPathError


ROOT_REF = "ROOT"
PARENT_REF = "PARENT"
SEPARATOR = "."

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_](?:[A-Za-z0-9_-]*[A-Za-z0-9_])?$")


# =============================================================================
# Choice paths
# =============================================================================


def split_path(path: str) -> list[str]:
    """Split a dotted path into segments, validating each one.

    Raises:
        InvalidPathError: If the path is empty or has a malformed segment
    """
    if not path or not path.strip():
        raise InvalidPathError(path or "", "path is empty")
    segments = path.strip().split(SEPARATOR)
    for segment in segments:
        if segment in (ROOT_REF, PARENT_REF):
            continue
        if not _SEGMENT_PATTERN.match(segment):
            raise InvalidPathError(path, f"invalid segment '{segment}'")
    return segments


def join_path(segments: Iterable[str]) -> str:
    return SEPARATOR.join(s for s in segments if s)


def parent_path(path: str) -> str:
    """Return the parent of an absolute path ('' for top-level paths)."""
    head, _, _ = path.rpartition(SEPARATOR)
    return head


def child_path(parent: str, node_id: str) -> str:
    return f"{parent}{SEPARATOR}{node_id}" if parent else node_id


class PathResolver:
    """Resolve choice paths against the set of declared flow node paths.

    Example:
        >>> resolver = PathResolver({"app", "app.name", "app.db"}, common_prefix="app")
        >>> resolver.resolve("name", current="app")
        'app.name'
        >>> resolver.resolve("PARENT.db", current="app.name")
        'app.db'
        >>> resolver.resolve("db", current="other")
        'app.db'
    """

    def __init__(self, declared: Iterable[str], common_prefix: str | None = None):
        self._declared = frozenset(declared)
        self.common_prefix = common_prefix.strip(SEPARATOR) if common_prefix else ""
        if self.common_prefix:
            split_path(self.common_prefix)

    def is_declared(self, path: str) -> bool:
        return path in self._declared

    def resolve(self, path: str, current: str = "") -> str:
        """Resolve a path written inside the scope ``current``.

        Raises:
            InvalidPathError: If the path is malformed or not declared
        """
        segments = split_path(path)
        base = current.split(SEPARATOR) if current else []

        if segments[0] == ROOT_REF:
            rest = segments[1:]
            if not rest:
                raise InvalidPathError(path, "ROOT must be followed by a path")
            if ROOT_REF in rest or PARENT_REF in rest:
                raise InvalidPathError(path, "ROOT cannot be combined with ROOT/PARENT")
            return self._declared_or_fail(path, join_path(rest))

        depth = 0
        while segments and segments[0] == PARENT_REF:
            depth += 1
            segments = segments[1:]
        if ROOT_REF in segments:
            raise InvalidPathError(path, "ROOT must be the first segment")
        if PARENT_REF in segments:
            raise InvalidPathError(path, "PARENT must precede all other segments")
        if not segments:
            raise InvalidPathError(path, "PARENT must be followed by a path")

        if depth:
            if depth > len(base):
                raise InvalidPathError(
                    path, f"goes {depth} level(s) up from '{current}' (depth {len(base)})"
                )
            return self._declared_or_fail(
                path, join_path(base[: len(base) - depth] + segments)
            )

        candidate = join_path(base + segments)
        if candidate in self._declared:
            return candidate
        prefixed = join_path([self.common_prefix] + segments)
        if prefixed in self._declared:
            return prefixed
        raise InvalidPathError(
            path,
            f"no declared node at '{candidate}'"
            + (f" or '{prefixed}'" if prefixed != candidate else ""),
        )

    def resolve_absolute(self, path: str) -> str:
        """Resolve an external (CLI / query) path, which must be absolute."""
        segments = split_path(path)
        if ROOT_REF in segments or PARENT_REF in segments:
            raise InvalidPathError(path, "external paths must be plain absolute paths")
        return self._declared_or_fail(path, join_path(segments))

    def _declared_or_fail(self, raw: str, candidate: str) -> str:
        if candidate not in self._declared:
            raise InvalidPathError(raw, f"no declared node at '{candidate}'")
        return candidate


# =============================================================================
# File paths
# =============================================================================


def resolve_relative_to(path: str | Path, base_file: Path) -> Path:
    """
    Resolve a path relative to a base file's directory.

    If path is absolute, returns it unchanged.
    If path is relative, resolves it against base_file's parent directory.

    Example:
        >>> resolve_relative_to("common/security.xml", Path("/arch/helidon-archetype.xml"))
        PosixPath('/arch/common/security.xml')
    """
    path = Path(path)
    if path.is_absolute():
        return path
    return (base_file.parent / path).resolve()


def make_relative_to(path: str | Path, base_file: Path) -> str:
    """
    Convert a path to be relative to a base file's directory.

    Used when writing file references into plan files. If the path cannot
    be made relative, returns the absolute path as a string.
    """
    path = Path(path).resolve()
    base_dir = base_file.parent.resolve()

    try:
        return str(path.relative_to(base_dir))
    except ValueError:
        return str(path)
