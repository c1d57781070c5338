"""Template model merging.

Model entries from every selected output are resolved to final values
(file contents read, inline templates rendered, ``${}`` placeholders
substituted), sorted by ``(order, declaration sequence)`` and merged:

- value: the last one sorted wins, except that an ``override`` value
  beats every value without it
- list: items are concatenated, then stable-sorted by their own order
- map: entries are merged recursively by key

A key declared with two different kinds is an error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import chevron
from jinja2 import (
    BaseLoader,
    Environment,
    StrictUndefined,
    TemplateSyntaxError,
    UndefinedError,
)

from ..context.tree import ChoiceTree
from ..core.models.context import ContextValue
from ..descriptor.compiler import Archetype, CompiledModelEntry, OutputEntry
from ..errors import ExpressionError, OutputResolutionError
from ..utils.expressions import evaluate, interpolate
from ..utils.paths import SEPARATOR, child_path, resolve_relative_to

logger = logging.getLogger(__name__)


# =============================================================================
# Template Rendering
# =============================================================================


class ChoiceNamespace:
    """Attribute/item view of the Choice Tree for templates.

    ``{{ app.name }}`` renders the value at ``app.name``; hyphenated ids use
    item access (``{{ choices['media-support'] }}``). Options are truthy when
    enabled and multi-selects iterate over their selected ids.
    """

    def __init__(self, tree: ChoiceTree, path: str = ""):
        self._tree = tree
        self._path = path

    def _child(self, name: str) -> "ChoiceNamespace":
        path = child_path(self._path, name)
        prefix = path + SEPARATOR
        if path in self._tree or any(p.startswith(prefix) for p in self._tree):
            return ChoiceNamespace(self._tree, path)
        raise KeyError(path)

    def __getattr__(self, name: str) -> "ChoiceNamespace":
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._child(name)
        except KeyError:
            raise AttributeError(name)

    def __getitem__(self, name: str) -> "ChoiceNamespace":
        return self._child(name)

    def __str__(self) -> str:
        return self._tree.text(self._path) or ""

    def __bool__(self) -> bool:
        value = self._tree.get(self._path)
        if value is None:
            return False
        if value.kind == "option":
            return value.enabled
        if value.kind == "select":
            return bool(value.selected)
        return bool(value.text)

    def __iter__(self):
        value = self._tree.get(self._path)
        if value is not None and value.kind == "select":
            return iter(value.selected)
        return iter(())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ChoiceNamespace):
            return str(self) == str(other)
        if isinstance(other, bool):
            return bool(self) == other
        if isinstance(other, str):
            return str(self) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(str(self))


def _create_jinja_environment() -> Environment:
    return Environment(
        loader=BaseLoader(),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )


def _scalar(value: ContextValue) -> Any:
    if value.kind == "option":
        return value.enabled
    if value.kind == "select" and value.multiple:
        return list(value.selected)
    return value.as_text()


def choice_data(tree: ChoiceTree) -> dict[str, Any]:
    """Nested dict of the choices, for logic-less templates.

    Options become booleans and multi-selects lists of ids, so both work as
    mustache sections. A node with answered descendants becomes a dict of
    those descendants.
    """
    paths = list(tree)
    parents = {p.rsplit(SEPARATOR, 1)[0] for p in paths if SEPARATOR in p}
    data: dict[str, Any] = {}
    for path in sorted(paths, key=lambda p: p.count(SEPARATOR)):
        *heads, leaf = path.split(SEPARATOR)
        scope = data
        for head in heads:
            child = scope.get(head)
            if not isinstance(child, dict):
                child = scope[head] = {}
            scope = child
        if path in parents:
            scope.setdefault(leaf, {})
        else:
            scope[leaf] = _scalar(tree.get(path))
    return data


def _render_jinja(source: str, tree: ChoiceTree) -> str:
    root = ChoiceNamespace(tree)
    context: dict[str, Any] = {"choices": root}
    for path in tree:
        head = path.split(SEPARATOR, 1)[0]
        if head.isidentifier():
            context.setdefault(head, ChoiceNamespace(tree, head))
    return _create_jinja_environment().from_string(source).render(**context)


def render_template(
    source: str, tree: ChoiceTree, name: str = "<model>", engine: str = "mustache"
) -> str:
    """Render an inline model template against the choices.

    ``mustache`` templates see :func:`choice_data`; ``jinja`` templates see
    a :class:`ChoiceNamespace` and fail on undefined variables.

    Raises:
        OutputResolutionError: On an unknown engine, a syntax error or an
            undefined (jinja) variable
    """
    try:
        if engine == "mustache":
            return chevron.render(source, choice_data(tree))
        if engine == "jinja":
            return _render_jinja(source, tree)
    except (chevron.ChevronError, TemplateSyntaxError, UndefinedError) as e:
        raise OutputResolutionError(f"Cannot render template for {name}: {e}") from e
    raise OutputResolutionError(f"Cannot render template for {name}: unknown engine '{engine}'")


# =============================================================================
# Merge
# =============================================================================


@dataclass
class _Resolved:
    kind: str
    key: str | None
    order: int
    seq: int
    text: str = ""
    items: list["_Resolved"] = field(default_factory=list)
    override: bool = False


class ModelMerger:
    """Resolve and merge the model entries of selected outputs."""

    def __init__(self, archetype: Archetype, tree: ChoiceTree):
        self.archetype = archetype
        self.tree = tree

    def _holds(self, entry: CompiledModelEntry) -> bool:
        return entry.condition is None or evaluate(entry.condition, self.tree.get)

    def _value_text(self, entry: CompiledModelEntry, output: OutputEntry) -> str:
        decl = entry.entry
        name = f"model key '{decl.key}'" if decl.key else f"model value #{entry.seq}"
        if decl.file is not None:
            path = resolve_relative_to(decl.file, output.source)
            if not path.is_file():
                raise OutputResolutionError(f"Model file not found for {name}: {path}")
            text = path.read_text()
        else:
            text = decl.text
        if decl.template is not None:
            return render_template(text, self.tree, name, engine=decl.template)
        if decl.file is not None:
            return text
        try:
            return interpolate(
                text, self.tree.text, resolve=lambda p: self.archetype.resolve(p, output.scope)
            )
        except ExpressionError as e:
            raise OutputResolutionError(f"Cannot resolve {name}: {e}") from e

    def resolve(self, entry: CompiledModelEntry, output: OutputEntry) -> _Resolved | None:
        if not self._holds(entry):
            return None
        resolved = _Resolved(kind=entry.kind, key=entry.key, order=entry.order, seq=entry.seq)
        if entry.kind == "value":
            resolved.text = self._value_text(entry, output)
            resolved.override = entry.entry.override
        else:
            resolved.items = [
                r for r in (self.resolve(child, output) for child in entry.children) if r is not None
            ]
        return resolved

    def merge(self, outputs: list[OutputEntry]) -> dict[str, Any]:
        entries = []
        for output in outputs:
            for entry in output.model:
                resolved = self.resolve(entry, output)
                if resolved is not None:
                    entries.append(resolved)
        return _merge_keyed(entries, "")


def _merge_keyed(entries: list[_Resolved], parent: str) -> dict[str, Any]:
    merged: dict[str, _Resolved] = {}
    for entry in sorted(entries, key=lambda e: (e.order, e.seq)):
        existing = merged.get(entry.key)
        if existing is None:
            merged[entry.key] = _Resolved(
                kind=entry.kind, key=entry.key, order=entry.order, seq=entry.seq,
                text=entry.text, items=list(entry.items), override=entry.override,
            )
            continue
        if existing.kind != entry.kind:
            raise OutputResolutionError(
                f"Model key '{parent}{entry.key}' is declared as both {existing.kind} and {entry.kind}"
            )
        if entry.kind == "value":
            if existing.override and not entry.override:
                continue
            existing.text = entry.text
            existing.override = entry.override
        else:
            existing.items.extend(entry.items)
    return {key: _materialize(value, f"{parent}{key}.") for key, value in merged.items()}


def _materialize(entry: _Resolved, parent: str) -> Any:
    if entry.kind == "value":
        return entry.text
    if entry.kind == "map":
        return _merge_keyed(entry.items, parent)
    items = sorted(entry.items, key=lambda e: e.order)
    return [_materialize(item, parent) for item in items]


def merge_model(archetype: Archetype, tree: ChoiceTree, outputs: list[OutputEntry]) -> dict[str, Any]:
    """Merge the model of the given (already selected) outputs."""
    model = ModelMerger(archetype, tree).merge(outputs)
    logger.debug("Merged model keys: %s", ", ".join(model) or "none")
    return model
