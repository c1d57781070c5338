"""Resolution session: one archetype, one Choice Tree, one user (or batch)."""

import logging
from collections.abc import Mapping
from urllib.parse import parse_qsl

from ..context.tree import ChoiceTree
from ..context.values import parse_value
from ..core.models.context import ContextNode
from ..descriptor.compiler import Archetype, FlowEntry
from ..errors import FlowStateError, InputValueError
from .resolver import FlowResolver, Reach, StepState

logger = logging.getLogger(__name__)


# =============================================================================
# External inputs
# =============================================================================


def parse_external_inputs(pairs: list[str]) -> dict[str, str]:
    """Parse ``key=value`` strings (e.g. repeated ``--input`` options).

    Raises:
        InputValueError: If a pair has no '=' or an empty key
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise InputValueError(f"Expected key=value, got '{pair}'")
        result[key.strip()] = value
    return result


def parse_query(query: str) -> dict[str, str]:
    """Parse a URI query string (``a.b=x&c=true``) into external inputs."""
    return dict(parse_qsl(query.lstrip("?"), keep_blank_values=True))


# =============================================================================
# Session
# =============================================================================


class FlowSession:
    """Drives one resolution over an archetype.

    External inputs are applied first, then any reachable presets. Answers
    are submitted against the current step, and ``result()`` selects the
    outputs once no step remains.

    Example:
        >>> session = FlowSession(archetype, external={"app.name": "demo"})
        >>> step = session.next_step()
        >>> session.submit("tracing", "zipkin")
        >>> session.continue_step()
        >>> selection = session.result()
    """

    def __init__(
        self,
        archetype: Archetype,
        external: Mapping[str, str] | None = None,
        tree: ChoiceTree | None = None,
    ):
        self.archetype = archetype
        self.resolver = FlowResolver(archetype)
        self.tree = tree if tree is not None else ChoiceTree()
        for path, raw in (external or {}).items():
            self._apply_external(path, raw)
        self.resolver.apply_presets(self.tree)

    def _apply_external(self, path: str, raw: str) -> ContextNode:
        absolute = self.archetype.resolver.resolve_absolute(path)
        self.archetype.input_at(absolute)
        value = parse_value(self.archetype.signature(absolute), raw, absolute)
        return self.tree.set(absolute, value, external=True)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def next_step(self) -> FlowEntry | None:
        return self.resolver.next_step(self.tree)

    @property
    def current_step(self) -> FlowEntry | None:
        return self.next_step()

    @property
    def done(self) -> bool:
        return self.next_step() is None

    def _step(self, step: FlowEntry | None) -> FlowEntry:
        step = step or self.next_step()
        if step is None:
            raise FlowStateError("No active step: the flow is complete")
        return step

    def visible_inputs(self, step: FlowEntry | None = None) -> list[FlowEntry]:
        return self.resolver.visible_inputs(self._step(step), self.tree)

    def available_options(self, select: FlowEntry | str) -> list[FlowEntry]:
        if isinstance(select, str):
            select = self.archetype.input_at(select)
        return self.resolver.available_options(select, self.tree)

    def step_state(self, step: FlowEntry) -> StepState:
        return self.resolver.step_state(step, self.tree)

    def can_continue(self, step: FlowEntry | None = None) -> bool:
        return self.resolver.can_continue(self._step(step), self.tree)

    def can_generate(self) -> bool:
        return self.resolver.can_generate(self.tree)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def resolve_input(self, path: str) -> FlowEntry:
        """Resolve a submitted path relative to the current step's scope."""
        step = self.next_step()
        scope = step.path if step is not None else ""
        return self.archetype.input_at(self.archetype.resolve(path, scope))

    def submit(self, path: str, value: str | bool | list[str]) -> ContextNode:
        """Record an answer.

        Raises:
            InvalidPathError: If the path is not a declared input
            InputValueError: If the input is not visible or the value is invalid
            ReadOnlyViolation: If the path holds a different read-only value
        """
        return self.submit_entry(self.resolve_input(path), value)

    def submit_entry(self, entry: FlowEntry, value: str | bool | list[str]) -> ContextNode:
        """Record an answer for an already resolved input.

        Raises:
            InputValueError: If the input is not visible or the value is invalid
            ReadOnlyViolation: If the path holds a different read-only value
        """
        if self.resolver.reach(entry, self.tree) is not Reach.ENABLED:
            raise InputValueError(f"Input '{entry.path}' is not currently visible")
        parsed = parse_value(self.archetype.signature(entry.path), value, entry.path)
        if entry.kind == "select":
            available = {c.id for c in self.resolver.available_options(entry, self.tree)}
            unavailable = [s for s in parsed.selected if s not in available]
            if unavailable:
                raise InputValueError(
                    f"Option(s) {', '.join(unavailable)} not available for '{entry.path}'"
                )
        node = self.tree.set(entry.path, parsed)
        self.resolver.apply_presets(self.tree)
        return node

    def continue_step(self, step: FlowEntry | None = None) -> list[str]:
        return self.resolver.continue_step(self._step(step), self.tree)

    def skip_optional(self) -> None:
        self.resolver.skip_optional(self.tree)

    def run_batch(self, answers: Mapping[str, object] | None = None) -> ChoiceTree:
        """Resolve the whole flow without prompting.

        ``answers`` maps absolute input paths to raw values. Each step takes
        the answers for its visible inputs, then continues with defaults.

        Raises:
            InvalidPathError: If an answer names an undeclared input
            FlowStateError: If a required input has neither answer nor default
        """
        pending: dict[str, object] = {}
        for path, raw in (answers or {}).items():
            absolute = self.archetype.resolver.resolve_absolute(path)
            self.archetype.input_at(absolute)
            pending[absolute] = raw

        while (step := self.next_step()) is not None:
            progressed = True
            while progressed:
                progressed = False
                for entry in self.visible_inputs(step):
                    if entry.path not in self.tree and entry.path in pending:
                        self.submit_entry(entry, pending.pop(entry.path))
                        progressed = True
            if self.step_state(step) is StepState.ACTIVE:
                self.continue_step(step)
                if self.step_state(step) is StepState.ACTIVE:
                    missing = ", ".join(e.path for e in self.resolver.missing_inputs(step, self.tree))
                    raise FlowStateError(f"Step '{step.path}' needs values for: {missing}")

        for path in pending:
            logger.debug("Answer for %s ignored: input not reached", path)
        return self.tree

    def result(self, default_engine: str | None = None):
        """Select outputs for the finished flow.

        Raises:
            FlowStateError: If steps remain unanswered
        """
        from ..output.selector import select_outputs

        if not self.done:
            raise FlowStateError(f"Flow is not complete: step '{self.next_step().path}' is active")
        return select_outputs(self.archetype, self.tree, default_engine=default_engine)
