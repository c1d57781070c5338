"""All Pydantic models for archeflow, organized by domain.

- descriptor.py: descriptor documents, flow nodes, outputs, model entries
- context.py: run-time choice values
- validation.py: validation issues and results
"""

from .descriptor import (
    DEFAULT_MODEL_ORDER,
    # Outputs
    Replacement,
    Transformation,
    FileSet,
    FileEntry,
    Output,
    # Model entries
    ModelValue,
    ModelList,
    ModelMap,
    ModelEntry,
    # Directives
    Preset,
    PresetBlock,
    Invoke,
    Include,
    # Flow nodes
    Step,
    TextInput,
    OptionInput,
    SelectInput,
    Choice,
    FlowNode,
    InputNode,
    INPUT_KINDS,
    # Document
    DescriptorDocument,
)

from .context import (
    TextValue,
    OptionValue,
    SelectValue,
    ContextValue,
    ContextNode,
)

from .validation import (
    Severity,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "DEFAULT_MODEL_ORDER",
    "Replacement",
    "Transformation",
    "FileSet",
    "FileEntry",
    "Output",
    "ModelValue",
    "ModelList",
    "ModelMap",
    "ModelEntry",
    "Preset",
    "PresetBlock",
    "Invoke",
    "Include",
    "Step",
    "TextInput",
    "OptionInput",
    "SelectInput",
    "Choice",
    "FlowNode",
    "InputNode",
    "INPUT_KINDS",
    "DescriptorDocument",
    "TextValue",
    "OptionValue",
    "SelectValue",
    "ContextValue",
    "ContextNode",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
]
