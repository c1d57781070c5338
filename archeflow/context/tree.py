"""Choice Tree: the per-session store of resolved input values.

The tree is keyed by absolute dotted paths. It only grows: values are added
or locked read-only, never removed.
"""

import logging
from collections.abc import Iterator

from ..core.models.context import ContextNode, ContextValue, SelectValue
from ..errors import ReadOnlyViolation
from ..utils.paths import SEPARATOR

logger = logging.getLogger(__name__)


class ChoiceTree:
    """Mutable mapping of absolute path -> ContextNode.

    Example:
        >>> tree = ChoiceTree()
        >>> tree.set("app.name", TextValue(text="demo"), read_only=True)
        >>> tree.set("app.name", TextValue(text="demo"))   # same value, fine
        >>> tree.set("app.name", TextValue(text="other"))  # ReadOnlyViolation
    """

    def __init__(self) -> None:
        self._nodes: dict[str, ContextNode] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def set(
        self,
        path: str,
        value: ContextValue,
        external: bool = False,
        read_only: bool = False,
    ) -> ContextNode:
        """Store a value.

        Setting the same value again is a no-op apart from upgrading the
        node to read-only or external.

        Raises:
            ReadOnlyViolation: If the path holds a different read-only value
        """
        if isinstance(value, SelectValue):
            value = _normalize_select(value)

        existing = self._nodes.get(path)
        if existing is not None:
            if existing.value == value:
                node = existing.model_copy(
                    update={
                        "read_only": existing.read_only or read_only,
                        "external": existing.external or external,
                    }
                )
                self._nodes[path] = node
                return node
            if existing.read_only:
                raise ReadOnlyViolation(
                    path, existing.value.as_text(), value.as_text()
                )

        node = ContextNode(path=path, value=value, external=external, read_only=read_only)
        self._nodes[path] = node
        logger.debug(
            "Set %s = %r%s%s",
            path,
            value.as_text(),
            " (external)" if external else "",
            " (read-only)" if read_only else "",
        )
        return node

    def get(self, path: str) -> ContextValue | None:
        node = self._nodes.get(path)
        return node.value if node else None

    def node(self, path: str) -> ContextNode | None:
        return self._nodes.get(path)

    def text(self, path: str) -> str | None:
        """String form of the value at path, or None when unset."""
        value = self.get(path)
        return value.as_text() if value is not None else None

    def children(self, path: str) -> list[ContextNode]:
        """Nodes whose path is a direct child of ``path`` ('' for top level)."""
        prefix = f"{path}{SEPARATOR}" if path else ""
        return [
            node
            for key, node in self._nodes.items()
            if key.startswith(prefix) and SEPARATOR not in key[len(prefix):]
        ]

    def nodes(self) -> list[ContextNode]:
        """All nodes, in the order they were first set."""
        return list(self._nodes.values())

    def copy(self) -> "ChoiceTree":
        clone = ChoiceTree()
        clone._nodes = dict(self._nodes)
        return clone

    def as_properties(self, prefix: str = "") -> dict[str, str]:
        """Flat ``{prefix + path: text}`` view, in insertion order."""
        return {f"{prefix}{path}": node.value.as_text() for path, node in self._nodes.items()}

    def snapshot(self) -> dict[str, str | bool | list[str]]:
        """Plain Python view of every value (JSON / YAML serializable)."""
        result: dict[str, str | bool | list[str]] = {}
        for path, node in self._nodes.items():
            value = node.value
            if value.kind == "option":
                result[path] = value.enabled
            elif value.kind == "select":
                result[path] = list(value.selected) if value.multiple else value.as_text()
            else:
                result[path] = value.text
        return result


def _normalize_select(value: SelectValue) -> SelectValue:
    seen: list[str] = []
    for item in value.selected:
        if item not in seen:
            seen.append(item)
    if tuple(seen) == value.selected:
        return value
    return SelectValue(selected=tuple(seen), multiple=value.multiple)
