"""Flow resolution over a compiled Archetype and a Choice Tree.

The resolver is stateless: every question (which step is next, which inputs
are visible, may the user continue) is answered from the archetype and the
current Choice Tree alone.

Reachability of a node is one of three states:
- ENABLED: every condition on the way down holds and every enabling
  ancestor input is answered and enables the branch
- PENDING: an enabling ancestor input has no value yet
- DISABLED: a condition is false, an option is false, or a choice is
  not selected
"""

import logging
from enum import Enum

from ..context.tree import ChoiceTree
from ..context.values import empty_value, parse_value
from ..descriptor.compiler import Archetype, FlowEntry, PresetEntry
from ..errors import FlowStateError, ReadOnlyViolation
from ..utils.expressions import Expr, evaluate

logger = logging.getLogger(__name__)


class Reach(str, Enum):
    ENABLED = "enabled"
    PENDING = "pending"
    DISABLED = "disabled"


class StepState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ANSWERED = "answered"
    SKIPPED = "skipped"


class FlowResolver:
    """Answers flow questions for one archetype against any Choice Tree."""

    def __init__(self, archetype: Archetype):
        self.archetype = archetype

    # =========================================================================
    # Reachability
    # =========================================================================

    def holds(self, condition: Expr | None, tree: ChoiceTree) -> bool:
        return condition is None or evaluate(condition, tree.get)

    def reach(self, entry: FlowEntry, tree: ChoiceTree) -> Reach:
        """Whether the node itself is reachable."""
        parent = self.archetype.parent(entry)
        if parent is not None:
            gate = self.reach(parent, tree) if entry.kind == "choice" else self.inside(parent, tree)
            if gate is not Reach.ENABLED:
                return gate
        if not self.holds(entry.condition, tree):
            return Reach.DISABLED
        if entry.kind == "choice":
            selected = tree.get(parent.path)
            if selected is None:
                return Reach.PENDING
            return Reach.ENABLED if entry.id in selected.selected else Reach.DISABLED
        return Reach.ENABLED

    def inside(self, entry: FlowEntry, tree: ChoiceTree) -> Reach:
        """Whether the branch nested inside a node (children, outputs, presets) is reachable."""
        state = self.reach(entry, tree)
        if state is not Reach.ENABLED or not entry.is_input:
            return state
        value = tree.get(entry.path)
        if value is None:
            return Reach.PENDING
        if entry.kind == "option" and not value.enabled:
            return Reach.DISABLED
        return Reach.ENABLED

    def owner_reach(self, owner: int | None, tree: ChoiceTree) -> Reach:
        if owner is None:
            return Reach.ENABLED
        return self.inside(self.archetype.entries[owner], tree)

    # =========================================================================
    # Steps
    # =========================================================================

    def visible_inputs(self, step: FlowEntry, tree: ChoiceTree) -> list[FlowEntry]:
        return [
            entry
            for entry in self.archetype.step_inputs(step)
            if self.reach(entry, tree) is Reach.ENABLED
        ]

    def available_options(self, select: FlowEntry, tree: ChoiceTree) -> list[FlowEntry]:
        """Choices of a select whose own ``if`` holds."""
        return [c for c in self.archetype.choices(select) if self.holds(c.condition, tree)]

    def step_state(self, step: FlowEntry, tree: ChoiceTree) -> StepState:
        state = self.reach(step, tree)
        if state is Reach.DISABLED:
            return StepState.SKIPPED
        if state is Reach.PENDING:
            return StepState.PENDING
        if all(entry.path in tree for entry in self.visible_inputs(step, tree)):
            return StepState.ANSWERED
        return StepState.ACTIVE

    def next_step(self, tree: ChoiceTree) -> FlowEntry | None:
        """First ACTIVE step in declaration order, or None when the flow is done."""
        for step in self.archetype.steps():
            if self.step_state(step, tree) is StepState.ACTIVE:
                return step
        return None

    def missing_inputs(self, step: FlowEntry, tree: ChoiceTree) -> list[FlowEntry]:
        """Visible inputs that still need an explicit answer."""
        return [
            entry
            for entry in self.visible_inputs(step, tree)
            if entry.path not in tree and not entry.node.has_default and not entry.node.optional
        ]

    def can_continue(self, step: FlowEntry, tree: ChoiceTree) -> bool:
        if step.node.optional:
            return True
        return not self.missing_inputs(step, tree)

    def continue_step(self, step: FlowEntry, tree: ChoiceTree) -> list[str]:
        """Apply defaults to the step's unanswered visible inputs.

        Repeats until no new input is revealed, since a default may enable
        nested inputs. Returns the paths that were filled in.

        Raises:
            FlowStateError: If required inputs without defaults are unanswered
        """
        if not self.can_continue(step, tree):
            missing = ", ".join(e.path for e in self.missing_inputs(step, tree))
            raise FlowStateError(f"Cannot continue step '{step.path}': no value for {missing}")

        filled: list[str] = []
        while True:
            self.apply_presets(tree)
            changed = False
            for entry in self.visible_inputs(step, tree):
                if entry.path in tree:
                    continue
                signature = self.archetype.signature(entry.path)
                if entry.node.has_default:
                    value = parse_value(signature, entry.node.default, entry.path)
                elif entry.node.optional:
                    value = empty_value(signature)
                else:
                    continue
                tree.set(entry.path, value)
                filled.append(entry.path)
                changed = True
            if not changed:
                break
        logger.debug("Continued step %s, defaults applied to %s", step.path, filled or "nothing")
        return filled

    def can_generate(self, tree: ChoiceTree) -> bool:
        """True when every remaining reachable step is optional."""
        try:
            self.skip_optional(tree.copy())
        except FlowStateError:
            return False
        return True

    def skip_optional(self, tree: ChoiceTree) -> None:
        """Resolve every remaining step with its defaults.

        Raises:
            FlowStateError: If a remaining step is not optional
        """
        self.apply_presets(tree)
        while (step := self.next_step(tree)) is not None:
            if not step.node.optional:
                raise FlowStateError(f"Step '{step.path}' is required and has not been answered")
            self.continue_step(step, tree)
            if self.step_state(step, tree) is StepState.ACTIVE:
                raise FlowStateError(f"Optional step '{step.path}' could not be completed with defaults")

    # =========================================================================
    # Presets
    # =========================================================================

    def _preset_applies(self, preset: PresetEntry, tree: ChoiceTree) -> bool:
        return self.owner_reach(preset.owner, tree) is Reach.ENABLED and self.holds(
            preset.condition, tree
        )

    def apply_presets(self, tree: ChoiceTree) -> list[str]:
        """Apply every reachable flow-context preset as a read-only value.

        A preset on an externally set path is skipped with a warning. A
        preset that disagrees with any other existing value is a conflict.

        Raises:
            ReadOnlyViolation: On a conflicting preset
        """
        applied: list[str] = []
        skipped: set[tuple[str, str]] = set()
        changed = True
        while changed:
            changed = False
            for preset in self.archetype.presets:
                if not self._preset_applies(preset, tree):
                    continue
                for path, raw in preset.values:
                    value = parse_value(self.archetype.signature(path), raw, path)
                    node = tree.node(path)
                    if node is not None:
                        if node.value == value:
                            if not node.read_only:
                                tree.set(path, value, read_only=True)
                            continue
                        if node.external:
                            if (path, raw) not in skipped:
                                skipped.add((path, raw))
                                logger.warning(
                                    "Preset %s=%r skipped: value was set externally to %r",
                                    path, value.as_text(), node.value.as_text(),
                                )
                            continue
                        raise ReadOnlyViolation(path, node.value.as_text(), value.as_text())
                    tree.set(path, value, read_only=True)
                    applied.append(path)
                    changed = True
        return applied
