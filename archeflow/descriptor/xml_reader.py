"""XML descriptor reader.

Reads a descriptor file into a ParseTree: a flat arena of immutable
ParsedElement records linked by index. The arena is the only structure the
builder sees, so XML library details stay in this module.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from ..errors import DescriptorLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedElement:
    """One XML element: tag, attributes, stripped text and child indexes."""

    index: int
    tag: str
    attributes: dict[str, str]
    text: str
    children: tuple[int, ...]
    parent: int | None

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attributes.get(name, default)


@dataclass(frozen=True)
class ParseTree:
    """Arena of ParsedElements for one file. Index 0 is the root element."""

    source: Path
    elements: tuple[ParsedElement, ...]

    @property
    def root(self) -> ParsedElement:
        return self.elements[0]

    def children(self, element: ParsedElement) -> list[ParsedElement]:
        return [self.elements[i] for i in element.children]

    def location(self, element: ParsedElement) -> str:
        """Slash-joined tag chain, used in error messages."""
        tags = []
        current: ParsedElement | None = element
        while current is not None:
            label = current.tag
            if current.get("id"):
                label += f"[{current.get('id')}]"
            tags.append(label)
            current = self.elements[current.parent] if current.parent is not None else None
        return "/".join(reversed(tags))


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def read_parse_tree(path: Path | str) -> ParseTree:
    """Read and parse one descriptor file.

    Raises:
        DescriptorLoadError: If the file is missing or is not well-formed XML
    """
    path = Path(path)
    if not path.is_file():
        raise DescriptorLoadError("Descriptor not found", str(path))
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise DescriptorLoadError(f"Malformed descriptor XML: {e}", str(path)) from e
    except OSError as e:
        raise DescriptorLoadError(f"Cannot read descriptor: {e}", str(path)) from e

    elements: list[ParsedElement | None] = []

    def visit(node: ET.Element, parent: int | None) -> int:
        index = len(elements)
        elements.append(None)
        child_indexes = tuple(visit(child, index) for child in node)
        elements[index] = ParsedElement(
            index=index,
            tag=_local_name(node.tag),
            attributes={_local_name(k): v for k, v in node.attrib.items()},
            text=(node.text or "").strip(),
            children=child_indexes,
            parent=parent,
        )
        return index

    visit(root, None)
    logger.debug("Parsed %s (%d elements)", path, len(elements))
    return ParseTree(source=path.resolve(), elements=tuple(elements))
