"""Output selection.

Walks the output blocks of a compiled archetype, keeps those reachable
under the final Choice Tree and turns them into a render plan: a list of
ResolvedFiles (source, target, engine) plus the merged template model.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..config import get_config
from ..context.tree import ChoiceTree
from ..core.models.descriptor import Replacement
from ..descriptor.compiler import Archetype, CompiledFileSet, OutputEntry
from ..errors import ExpressionError, OutputResolutionError
from ..flow.resolver import FlowResolver, Reach
from ..utils.expressions import evaluate, interpolate, replacement_template
from ..utils.paths import make_relative_to, resolve_relative_to
from .model import merge_model

logger = logging.getLogger(__name__)


# =============================================================================
# Globs
# =============================================================================


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a file glob into a regex over '/'-separated relative paths.

    ``**/`` matches zero or more directories, ``**`` anything, ``*`` anything
    except '/', and ``?`` one character except '/'.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


# =============================================================================
# Render plan
# =============================================================================


@dataclass(frozen=True)
class ResolvedFile:
    """One file handed to the renderer. ``engine`` is None for plain copies."""

    source: Path
    target: str
    engine: str | None = None


@dataclass
class OutputSelection:
    """Files to render and the merged model, for an external renderer."""

    files: list[ResolvedFile] = field(default_factory=list)
    model: dict[str, Any] = field(default_factory=dict)
    choices: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, relative_to: Path | None = None) -> dict[str, Any]:
        def source(path: Path) -> str:
            return make_relative_to(path, relative_to) if relative_to else str(path)

        return {
            "files": [
                {"source": source(f.source), "target": f.target, "engine": f.engine}
                for f in self.files
            ],
            "model": self.model,
            "choices": self.choices,
        }

    def to_yaml(self, path: Path | str) -> None:
        """Save the render plan to a YAML file (sources relative to it)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(
                self.to_dict(relative_to=path),
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )


# =============================================================================
# Selection
# =============================================================================


class OutputSelector:
    def __init__(self, archetype: Archetype, tree: ChoiceTree, default_engine: str = "mustache"):
        self.archetype = archetype
        self.tree = tree
        self.default_engine = default_engine
        self.resolver = FlowResolver(archetype)

    def _holds(self, condition) -> bool:
        return condition is None or evaluate(condition, self.tree.get)

    def selected_outputs(self) -> list[OutputEntry]:
        return [
            output
            for output in self.archetype.outputs
            if self.resolver.owner_reach(output.owner, self.tree) is Reach.ENABLED
            and self._holds(output.condition)
        ]

    def _interpolate(self, text: str, scope: str) -> str:
        try:
            return interpolate(text, self.tree.text, resolve=lambda p: self.archetype.resolve(p, scope))
        except ExpressionError as e:
            raise OutputResolutionError(str(e)) from e

    def _replace(self, path: str, replacement: Replacement, scope: str, ref: str) -> str:
        try:
            template = replacement_template(
                replacement.replacement,
                self.tree.text,
                resolve=lambda p: self.archetype.resolve(p, scope),
            )
            return re.sub(replacement.regex, template, path)
        except ExpressionError as e:
            raise OutputResolutionError(str(e)) from e
        except re.error as e:
            raise OutputResolutionError(f"Transformation '{ref}' failed on '{path}': {e}") from e

    def transform(self, path: str, refs: tuple[str, ...], registry: dict) -> str:
        for ref in refs:
            if ref not in registry:
                declared = ref in self.archetype.transformations()
                raise OutputResolutionError(
                    f"Transformation '{ref}' is declared in an output that is not selected"
                    if declared
                    else f"Unknown transformation '{ref}'"
                )
            output, transformation = registry[ref]
            for replacement in transformation.replacements:
                path = self._replace(path, replacement, output.scope, ref)
        return path

    def list_files(self, file_set: CompiledFileSet, output: OutputEntry) -> tuple[Path, list[str]]:
        decl = file_set.decl
        base = resolve_relative_to(decl.directory, output.source)
        if not base.is_dir():
            raise OutputResolutionError(f"Output directory not found: {base}")
        candidates = sorted(p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file())

        if decl.includes:
            keep: set[str] = set()
            for pattern in decl.includes:
                regex = glob_to_regex(pattern)
                matched = {c for c in candidates if regex.fullmatch(c)}
                if not matched:
                    raise OutputResolutionError(
                        f"Include '{pattern}' matched no files in {base}"
                    )
                keep |= matched
            candidates = [c for c in candidates if c in keep]
        for pattern in decl.excludes:
            regex = glob_to_regex(pattern)
            candidates = [c for c in candidates if not regex.fullmatch(c)]
        return base, candidates

    def select(self) -> OutputSelection:
        outputs = self.selected_outputs()
        logger.debug("Selected %d of %d output blocks", len(outputs), len(self.archetype.outputs))

        registry: dict[str, tuple[OutputEntry, Any]] = {}
        for output in outputs:
            for transformation in output.transformations:
                registry.setdefault(transformation.id, (output, transformation))

        files: dict[str, ResolvedFile] = {}
        for output in outputs:
            for file_set in output.file_sets:
                if not self._holds(file_set.condition):
                    continue
                decl = file_set.decl
                engine = (decl.engine or self.default_engine) if decl.kind == "templates" else None
                base, relative = self.list_files(file_set, output)
                for rel in relative:
                    target = self.transform(rel, decl.transformations, registry)
                    files[target] = ResolvedFile(source=base / rel, target=target, engine=engine)
            for single in output.files:
                if not self._holds(single.condition):
                    continue
                decl = single.decl
                source = resolve_relative_to(decl.source, output.source)
                if not source.is_file():
                    raise OutputResolutionError(f"Output file not found: {source}")
                engine = (decl.engine or self.default_engine) if decl.kind == "template" else None
                target = self._interpolate(decl.target, output.scope)
                files[target] = ResolvedFile(source=source, target=target, engine=engine)

        return OutputSelection(
            files=list(files.values()),
            model=merge_model(self.archetype, self.tree, outputs),
            choices=self.tree.snapshot(),
        )


def select_outputs(
    archetype: Archetype,
    tree: ChoiceTree,
    default_engine: str | None = None,
) -> OutputSelection:
    """Select output files and merge the model for a resolved Choice Tree.

    Raises:
        OutputResolutionError: On missing files, empty include globs,
            unselected transformations or model kind conflicts
    """
    if default_engine is None:
        default_engine = get_config().output.default_engine
    return OutputSelector(archetype, tree, default_engine).select()
