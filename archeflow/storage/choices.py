"""Persisted choices.

Choices are saved as a flat properties file (``.helidon`` by default), one
``FLOW.<path>=<value>`` line per resolved input. Loading returns plain
``{path: value}`` strings that can be fed back as external inputs.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from ..config import get_config
from ..context.tree import ChoiceTree
from ..errors import InputValueError

logger = logging.getLogger(__name__)

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r", "t": "\t", "=": "=", ":": ":", " ": " ", "#": "#", "!": "!"}


def _escape(text: str, key: bool = False) -> str:
    escaped = "".join(_ESCAPES.get(c, c) for c in text)
    if key:
        escaped = escaped.replace("=", "\\=").replace(":", "\\:").replace(" ", "\\ ")
    return escaped


def _unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            out.append(_UNESCAPES.get(text[i + 1], text[i + 1]))
            i += 2
        else:
            out.append(text[i])
            i += 1
    return "".join(out)


def _split_line(line: str) -> tuple[str, str] | None:
    """Split a properties line at the first unescaped '=' or ':'."""
    i = 0
    while i < len(line):
        if line[i] == "\\":
            i += 2
            continue
        if line[i] in "=:":
            return _unescape(line[:i].strip()), _unescape(line[i + 1:].lstrip())
        i += 1
    return None


def save_choices(tree: ChoiceTree, path: Path | str | None = None, prefix: str | None = None) -> Path:
    """Write every value of the tree as ``<prefix><path>=<value>``."""
    config = get_config().resolver
    path = Path(path or config.choices_file)
    prefix = config.choices_prefix if prefix is None else prefix

    lines = [f"#{datetime.now(timezone.utc).isoformat()}"]
    for key, value in tree.as_properties(prefix).items():
        lines.append(f"{_escape(key, key=True)}={_escape(value)}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")
    logger.debug("Saved %d choices to %s", len(tree), path)
    return path


def load_choices(path: Path | str | None = None, prefix: str | None = None) -> dict[str, str]:
    """Read a choices file, keeping only keys that start with the prefix.

    Returns an empty dict when the file does not exist.

    Raises:
        InputValueError: If a non-comment line has no separator
    """
    config = get_config().resolver
    path = Path(path or config.choices_file)
    prefix = config.choices_prefix if prefix is None else prefix
    if not path.is_file():
        return {}

    choices: dict[str, str] = {}
    for number, raw in enumerate(path.read_text().splitlines(), start=1):
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        pair = _split_line(line)
        if pair is None:
            raise InputValueError(f"{path}:{number}: expected key=value, got '{line}'")
        key, value = pair
        if key.startswith(prefix):
            choices[key[len(prefix):]] = value
    logger.debug("Loaded %d choices from %s", len(choices), path)
    return choices
