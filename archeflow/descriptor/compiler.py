"""Compile descriptor documents into an Archetype.

Compilation walks the entry document, inlining ``flow-invoke`` targets at
the invoking location and attaching the outputs of ``flow-include`` targets,
then assigns every flow node its absolute path. The result is an immutable
arena: FlowEntry, OutputEntry and PresetEntry records linked by index, with
every ``if`` expression parsed, bound to absolute paths and type-checked.

Invoke/include chains are tracked with an active-path stack; re-entering a
document that is still on the stack is a cycle. Reaching the same document
twice through separate branches is not.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..core.models import (
    INPUT_KINDS,
    Choice,
    DescriptorDocument,
    FileEntry,
    FileSet,
    Include,
    Invoke,
    ModelEntry,
    Output,
    PresetBlock,
    SelectInput,
    Severity,
    Transformation,
    ValidationIssue,
    ValidationResult,
)
from ..errors import (
    CyclicInvokeError,
    DescriptorLoadError,
    DescriptorValidationError,
    ExpressionError,
    ExpressionTypeError,
    InvalidPathError,
)
from ..utils.expressions import (
    Expr,
    InputSignature,
    bind_paths,
    check_types,
    parse_expression,
    placeholders,
)
from ..utils.paths import PathResolver, child_path, resolve_relative_to
from .loader import DescriptorCache, get_cache

logger = logging.getLogger(__name__)


# =============================================================================
# Compiled records
# =============================================================================


@dataclass(frozen=True)
class FlowEntry:
    """A flow node placed at its absolute path."""

    index: int
    node: object  # FlowNode
    path: str
    parent: int | None
    children: tuple[int, ...]
    source: Path
    condition: Expr | None = None

    @property
    def kind(self) -> str:
        return self.node.kind

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def is_input(self) -> bool:
        return self.node.kind in INPUT_KINDS

    @property
    def is_step(self) -> bool:
        return self.node.kind == "step"

    @property
    def label(self) -> str:
        return self.node.label or self.node.id


@dataclass(frozen=True)
class CompiledModelEntry:
    """A model entry with its bound condition and arena sequence number."""

    entry: ModelEntry
    seq: int
    condition: Expr | None = None
    children: tuple["CompiledModelEntry", ...] = ()

    @property
    def kind(self) -> str:
        return self.entry.kind

    @property
    def key(self) -> str | None:
        return self.entry.key

    @property
    def order(self) -> int:
        return self.entry.order


@dataclass(frozen=True)
class CompiledFileSet:
    decl: FileSet
    condition: Expr | None = None


@dataclass(frozen=True)
class CompiledFile:
    decl: FileEntry
    condition: Expr | None = None


@dataclass(frozen=True)
class OutputEntry:
    """An output block attached to a flow entry (or the root when owner is None)."""

    index: int
    owner: int | None
    scope: str
    source: Path
    condition: Expr | None
    transformations: tuple[Transformation, ...]
    file_sets: tuple[CompiledFileSet, ...]
    files: tuple[CompiledFile, ...]
    model: tuple[CompiledModelEntry, ...]


@dataclass(frozen=True)
class PresetEntry:
    """A flow-context block with its preset paths made absolute."""

    owner: int | None
    scope: str
    source: Path
    condition: Expr | None
    values: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class Archetype:
    """Immutable compiled archetype, shareable across sessions."""

    directory: Path
    entry: Path
    name: str | None
    common_prefix: str
    entries: tuple[FlowEntry, ...]
    outputs: tuple[OutputEntry, ...]
    presets: tuple[PresetEntry, ...]
    documents: tuple[Path, ...]
    resolver: PathResolver = field(compare=False, repr=False)
    by_path: dict[str, int] = field(compare=False, repr=False)

    def entry_at(self, path: str) -> FlowEntry | None:
        index = self.by_path.get(path)
        return self.entries[index] if index is not None else None

    def input_at(self, path: str) -> FlowEntry:
        """Return the input declared at an absolute path.

        Raises:
            InvalidPathError: If nothing, or something other than an input, is there
        """
        entry = self.entry_at(path)
        if entry is None:
            raise InvalidPathError(path, "no declared node at this path")
        if not entry.is_input:
            raise InvalidPathError(path, f"'{path}' is a {entry.kind}, not an input")
        return entry

    def parent(self, entry: FlowEntry) -> FlowEntry | None:
        return self.entries[entry.parent] if entry.parent is not None else None

    def children(self, entry: FlowEntry) -> list[FlowEntry]:
        return [self.entries[i] for i in entry.children]

    def ancestors(self, entry: FlowEntry) -> list[FlowEntry]:
        """Ancestors from the nearest upwards."""
        found = []
        current = self.parent(entry)
        while current is not None:
            found.append(current)
            current = self.parent(current)
        return found

    def steps(self) -> list[FlowEntry]:
        """All steps, in declaration order with invoked documents expanded in place."""
        return [e for e in self.entries if e.is_step]

    def inputs(self) -> list[FlowEntry]:
        return [e for e in self.entries if e.is_input]

    def step_of(self, entry: FlowEntry) -> FlowEntry | None:
        """Nearest enclosing step of an entry."""
        for ancestor in self.ancestors(entry):
            if ancestor.is_step:
                return ancestor
        return None

    def step_inputs(self, step: FlowEntry) -> list[FlowEntry]:
        """Inputs that belong to ``step`` (not to a nested step)."""
        return [
            e for e in self.entries
            if e.is_input and self.step_of(e) is not None and self.step_of(e).index == step.index
        ]

    def choices(self, select: FlowEntry) -> list[FlowEntry]:
        return [c for c in self.children(select) if c.kind == "choice"]

    def resolve(self, path: str, scope: str = "") -> str:
        return self.resolver.resolve(path, scope)

    def signature(self, path: str) -> InputSignature:
        """Type-checker view of the input at an absolute path."""
        entry = self.entry_at(path)
        if entry is None or not entry.is_input:
            kind = entry.kind if entry is not None else "missing node"
            raise ExpressionTypeError(f"'{path}' is a {kind}, not an input")
        if entry.kind == "select":
            return InputSignature(
                kind="select",
                multiple=entry.node.multiple,
                options=frozenset(c.id for c in self.choices(entry)),
            )
        return InputSignature(kind=entry.kind)

    def transformations(self) -> dict[str, list[tuple[int, Transformation]]]:
        """Transformation id -> [(output index, definition)] across all outputs."""
        found: dict[str, list[tuple[int, Transformation]]] = {}
        for output in self.outputs:
            for transformation in output.transformations:
                found.setdefault(transformation.id, []).append((output.index, transformation))
        return found


# =============================================================================
# Expansion
# =============================================================================


@dataclass
class _PendingEntry:
    node: object
    path: str
    parent: int | None
    scope: str
    source: Path
    children: list[int] = field(default_factory=list)


@dataclass
class _PendingOutput:
    output: Output
    owner: int | None
    scope: str
    source: Path


@dataclass
class _PendingPresets:
    block: PresetBlock
    owner: int | None
    scope: str
    source: Path


class _Compiler:
    def __init__(self, cache: DescriptorCache, result: ValidationResult):
        self.cache = cache
        self.result = result
        self.entries: list[_PendingEntry] = []
        self.outputs: list[_PendingOutput] = []
        self.presets: list[_PendingPresets] = []
        self.documents: list[Path] = []
        self.seq = 0
        self.resolver: PathResolver | None = None
        self.by_path: dict[str, int] = {}

    def report(self, category: str, location: str, message: str, suggestion: str | None = None):
        self.result.add(
            ValidationIssue(
                severity=Severity.ERROR,
                category=category,
                location=location,
                message=message,
                suggestion=suggestion,
            )
        )

    # -------------------------------------------------------------------------
    # Phase 1: expand invokes and includes, assign paths
    # -------------------------------------------------------------------------

    def enter(self, target: Path, stack: list[Path], referrer: Path) -> DescriptorDocument:
        if target in stack:
            cycle = stack[stack.index(target):] + [target]
            raise CyclicInvokeError([str(p) for p in cycle])
        try:
            document = self.cache.load(target)
        except DescriptorLoadError as e:
            if target.is_file() or target == referrer:
                raise
            raise DescriptorLoadError(
                f"Referenced descriptor not found: {target}", str(referrer)
            ) from e
        if target not in self.documents:
            self.documents.append(target)
        return document

    def expand_document(self, document: DescriptorDocument, path: Path, parent: int | None, scope: str, stack: list[Path]):
        stack.append(path)
        for block in document.presets:
            self.presets.append(_PendingPresets(block, parent, scope, path))
        for output in document.outputs:
            self.outputs.append(_PendingOutput(output, parent, scope, path))
        self.expand_children(document.children, parent, scope, path, stack)
        stack.pop()

    def expand_children(self, children, parent: int | None, scope: str, source: Path, stack: list[Path]):
        for child in children:
            if isinstance(child, Invoke):
                target = resolve_relative_to(child.src, source)
                logger.debug("Invoking %s at '%s'", target, scope or "<root>")
                document = self.enter(target, stack, source)
                self.expand_document(document, target, parent, scope, stack)
            elif isinstance(child, Include):
                target = resolve_relative_to(child.src, source)
                logger.debug("Including outputs of %s at '%s'", target, scope or "<root>")
                self.include(target, parent, scope, source, stack)
            else:
                self.add_node(child, parent, scope, source, stack)

    def include(self, target: Path, parent: int | None, scope: str, referrer: Path, stack: list[Path]):
        document = self.enter(target, stack, referrer)
        stack.append(target)
        for output in document.outputs:
            self.outputs.append(_PendingOutput(output, parent, scope, target))
        for child in document.children:
            if isinstance(child, Include):
                self.include(resolve_relative_to(child.src, target), parent, scope, target, stack)
        stack.pop()

    def add_node(self, node, parent: int | None, scope: str, source: Path, stack: list[Path]):
        path = child_path(scope, node.id)
        index = len(self.entries)
        self.entries.append(_PendingEntry(node, path, parent, scope, source))
        if parent is not None:
            self.entries[parent].children.append(index)
        for block in node.presets:
            self.presets.append(_PendingPresets(block, index, path, source))
        for output in node.outputs:
            self.outputs.append(_PendingOutput(output, index, path, source))
        self.expand_children(node.children, index, path, source, stack)

    # -------------------------------------------------------------------------
    # Phase 2: bind expressions
    # -------------------------------------------------------------------------

    def location(self, source: Path, path: str) -> str:
        return f"{source.name}:{path or '<root>'}"

    def signature(self, path: str) -> InputSignature:
        index = self.by_path.get(path)
        pending = self.entries[index] if index is not None else None
        if pending is None or pending.node.kind not in INPUT_KINDS:
            kind = pending.node.kind if pending is not None else "missing node"
            raise ExpressionTypeError(f"'{path}' is a {kind}, not an input")
        node = pending.node
        if isinstance(node, SelectInput):
            return InputSignature(
                kind="select",
                multiple=node.multiple,
                options=frozenset(c.id for c in node.children if isinstance(c, Choice)),
            )
        return InputSignature(kind=node.kind)

    def bind(self, raw: str | None, scope: str, location: str) -> Expr | None:
        if raw is None or not raw.strip():
            return None
        try:
            expr = parse_expression(raw)
            bound = bind_paths(expr, lambda p: self.resolver.resolve(p, scope))
            check_types(bound, self.signature)
            return bound
        except InvalidPathError as e:
            self.report("path", location, f"{e} in expression '{raw}'")
        except ExpressionError as e:
            self.report("expression", location, str(e))
        return None

    def check_placeholders(self, text: str, scope: str, location: str):
        try:
            for placeholder in placeholders(text):
                resolved = self.resolver.resolve(placeholder.path, scope)
                self.signature(resolved)
        except InvalidPathError as e:
            self.report("path", location, f"{e} in '{text}'")
        except ExpressionError as e:
            self.report("expression", location, f"{e} in '{text}'")

    def bind_model(self, entry, scope: str, location: str) -> CompiledModelEntry:
        self.seq += 1
        seq = self.seq
        where = f"{location} model[{entry.key or seq}]"
        condition = self.bind(entry.condition, scope, where)
        if entry.kind == "value":
            if entry.template is None and entry.file is None:
                self.check_placeholders(entry.text, scope, where)
            return CompiledModelEntry(entry, seq, condition)
        nested = entry.items if entry.kind == "list" else entry.entries
        children = tuple(self.bind_model(c, scope, location) for c in nested)
        return CompiledModelEntry(entry, seq, condition, children)

    def compile(self, entry_path: Path, default_prefix: str | None) -> Archetype:
        document = self.enter(entry_path, [], entry_path)
        self.expand_document(document, entry_path, None, "", [])

        for index, pending in enumerate(self.entries):
            if pending.path in self.by_path:
                self.report(
                    "duplicate_id",
                    self.location(pending.source, pending.path),
                    f"Duplicate node path '{pending.path}'",
                    suggestion="Ids must be unique among siblings",
                )
                continue
            self.by_path[pending.path] = index

        prefix = document.common_prefix if document.common_prefix is not None else default_prefix
        try:
            self.resolver = PathResolver(self.by_path, prefix)
        except InvalidPathError as e:
            self.report("path", self.location(entry_path, ""), f"Invalid common prefix: {e}")
            self.resolver = PathResolver(self.by_path)

        entries = tuple(
            FlowEntry(
                index=index,
                node=pending.node,
                path=pending.path,
                parent=pending.parent,
                children=tuple(pending.children),
                source=pending.source,
                condition=self.bind(
                    pending.node.condition, pending.scope, self.location(pending.source, pending.path)
                ),
            )
            for index, pending in enumerate(self.entries)
        )

        outputs = []
        for index, pending in enumerate(self.outputs):
            where = self.location(pending.source, pending.scope)
            output = pending.output
            for transformation in output.transformations:
                for replacement in transformation.replacements:
                    self.check_placeholders(
                        replacement.replacement, pending.scope, f"{where} transformation[{transformation.id}]"
                    )
            for single in output.files:
                self.check_placeholders(single.target, pending.scope, f"{where} {single.kind}[{single.target}]")
            outputs.append(
                OutputEntry(
                    index=index,
                    owner=pending.owner,
                    scope=pending.scope,
                    source=pending.source,
                    condition=self.bind(output.condition, pending.scope, f"{where} output"),
                    transformations=output.transformations,
                    file_sets=tuple(
                        CompiledFileSet(fs, self.bind(fs.condition, pending.scope, f"{where} {fs.kind}"))
                        for fs in output.file_sets
                    ),
                    files=tuple(
                        CompiledFile(f, self.bind(f.condition, pending.scope, f"{where} {f.kind}[{f.target}]"))
                        for f in output.files
                    ),
                    model=tuple(self.bind_model(m, pending.scope, where) for m in output.model),
                )
            )

        presets = []
        for pending in self.presets:
            where = self.location(pending.source, pending.scope)
            values = []
            for preset in pending.block.presets:
                try:
                    values.append((self.resolver.resolve(preset.path, pending.scope), preset.value))
                except InvalidPathError as e:
                    self.report("preset", where, str(e))
            presets.append(
                PresetEntry(
                    owner=pending.owner,
                    scope=pending.scope,
                    source=pending.source,
                    condition=self.bind(pending.block.condition, pending.scope, f"{where} flow-context"),
                    values=tuple(values),
                )
            )

        logger.debug(
            "Compiled %s: %d nodes, %d outputs, %d documents",
            entry_path, len(entries), len(outputs), len(self.documents),
        )
        return Archetype(
            directory=entry_path.parent,
            entry=entry_path,
            name=document.name,
            common_prefix=self.resolver.common_prefix,
            entries=entries,
            outputs=tuple(outputs),
            presets=tuple(presets),
            documents=tuple(self.documents),
            resolver=self.resolver,
            by_path=dict(self.by_path),
        )


def compile_archetype(
    entry: Path | str,
    cache: DescriptorCache | None = None,
    common_prefix: str | None = None,
    result: ValidationResult | None = None,
) -> Archetype:
    """Compile the archetype whose entry descriptor is ``entry``.

    Args:
        entry: Entry descriptor file
        cache: Descriptor cache (defaults to the process-wide cache)
        common_prefix: Prefix used when the entry document declares none
        result: Collects binding issues; when omitted, issues raise immediately

    Raises:
        DescriptorLoadError: If a descriptor is missing or malformed
        CyclicInvokeError: If invoke/include directives form a cycle
        DescriptorValidationError: If ``result`` is omitted and binding fails
    """
    collector = result if result is not None else ValidationResult()
    archetype = _Compiler(cache or get_cache(), collector).compile(
        Path(entry).resolve(), common_prefix
    )
    if result is None and not collector.valid:
        raise DescriptorValidationError(collector)
    return archetype
