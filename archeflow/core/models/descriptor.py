"""Descriptor models for archeflow.

A DescriptorDocument is the typed, immutable form of one XML descriptor.
Documents are linked into a compiled Archetype by archeflow.descriptor.compiler.

This module contains:
- Outputs: Replacement, Transformation, FileSet, FileEntry, Output
- Model entries: ModelValue, ModelList, ModelMap
- Flow nodes: Step, TextInput, OptionInput, SelectInput, Choice
- Directives: Invoke, Include, Preset, PresetBlock
- Document: DescriptorDocument
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_MODEL_ORDER = 100


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Output Blocks
# =============================================================================


class Replacement(_Frozen):
    """One regex replace step of a transformation."""

    regex: str
    replacement: str


class Transformation(_Frozen):
    """Named ordered pipeline of path rewrites."""

    id: str
    replacements: tuple[Replacement, ...] = ()


class FileSet(_Frozen):
    """A directory of files or templates filtered by include/exclude globs."""

    kind: Literal["files", "templates"]
    directory: str
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    transformations: tuple[str, ...] = ()
    condition: str | None = None
    engine: str | None = None  # templates only


class FileEntry(_Frozen):
    """A single file or template copied to an explicit target."""

    kind: Literal["file", "template"]
    source: str
    target: str
    condition: str | None = None
    engine: str | None = None


class ModelValue(_Frozen):
    kind: Literal["value"] = "value"
    key: str | None = None
    order: int = DEFAULT_MODEL_ORDER
    condition: str | None = None
    text: str = ""
    file: str | None = None
    template: str | None = None
    override: bool = False


class ModelList(_Frozen):
    kind: Literal["list"] = "list"
    key: str | None = None
    order: int = DEFAULT_MODEL_ORDER
    condition: str | None = None
    items: tuple["ModelEntry", ...] = ()


class ModelMap(_Frozen):
    kind: Literal["map"] = "map"
    key: str | None = None
    order: int = DEFAULT_MODEL_ORDER
    condition: str | None = None
    entries: tuple["ModelEntry", ...] = ()


ModelEntry = Annotated[
    Union[ModelValue, ModelList, ModelMap], Field(discriminator="kind")
]


class Output(_Frozen):
    """Output block attached to a flow node or to the document root."""

    condition: str | None = None
    transformations: tuple[Transformation, ...] = ()
    file_sets: tuple[FileSet, ...] = ()
    files: tuple[FileEntry, ...] = ()
    model: tuple[ModelEntry, ...] = ()


# =============================================================================
# Directives
# =============================================================================


class Preset(_Frozen):
    """A read-only value preset for an input path."""

    path: str
    value: str


class PresetBlock(_Frozen):
    """A flow-context directive: presets applied when reachable."""

    condition: str | None = None
    presets: tuple[Preset, ...] = ()


class Invoke(_Frozen):
    """Inline another document's flow nodes at this location."""

    kind: Literal["invoke"] = "invoke"
    src: str


class Include(_Frozen):
    """Pull in another document's output blocks only."""

    kind: Literal["include"] = "include"
    src: str


# =============================================================================
# Flow Nodes
# =============================================================================


class _FlowNodeBase(_Frozen):
    id: str
    label: str | None = None
    help: str | None = None
    condition: str | None = None
    children: tuple["FlowChild", ...] = ()
    outputs: tuple[Output, ...] = ()
    presets: tuple[PresetBlock, ...] = ()


class Step(_FlowNodeBase):
    """A group of inputs presented together."""

    kind: Literal["step"] = "step"
    optional: bool = False


class _InputBase(_FlowNodeBase):
    default: str | None = None
    optional: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not None


class TextInput(_InputBase):
    kind: Literal["text"] = "text"


class OptionInput(_InputBase):
    """Yes/no input. Its children are enabled only when true."""

    kind: Literal["option"] = "option"


class SelectInput(_InputBase):
    """Pick one (or several, when multiple) of its Choice children."""

    kind: Literal["select"] = "select"
    multiple: bool = False


class Choice(_FlowNodeBase):
    """One option of a select input. Its children are enabled when selected."""

    kind: Literal["choice"] = "choice"


FlowNode = Union[Step, TextInput, OptionInput, SelectInput, Choice]
InputNode = Union[TextInput, OptionInput, SelectInput]

FlowChild = Annotated[
    Union[Step, TextInput, OptionInput, SelectInput, Choice, Invoke, Include],
    Field(discriminator="kind"),
]

INPUT_KINDS = frozenset({"text", "option", "select"})


# =============================================================================
# Document
# =============================================================================


class DescriptorDocument(_Frozen):
    """One parsed descriptor file."""

    source: str = Field(description="Canonical path of the descriptor file")
    name: str | None = None
    common_prefix: str | None = None
    children: tuple[FlowChild, ...] = ()
    outputs: tuple[Output, ...] = ()
    presets: tuple[PresetBlock, ...] = ()


for _model in (ModelList, ModelMap, Step, TextInput, OptionInput, SelectInput, Choice):
    _model.model_rebuild()
DescriptorDocument.model_rebuild()
