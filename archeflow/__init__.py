"""archeflow: archetype flow resolution engine.

Loads XML archetype descriptors, drives the choice flow and selects the
files and template model for an external renderer.

Example:
    from archeflow import FlowSession, load_archetype

    archetype = load_archetype("./my-archetype")
    session = FlowSession(archetype, external={"app.name": "demo"})
    session.run_batch({"app.tracing": "zipkin"})
    selection = session.result()
"""

__version__ = "0.1.0"

from .context import ChoiceTree
from .descriptor import Archetype, DescriptorCache, compile_archetype, load_archetype
from .errors import (
    ArcheflowError,
    CyclicInvokeError,
    DescriptorLoadError,
    DescriptorValidationError,
    ExpressionError,
    ExpressionSyntaxError,
    ExpressionTypeError,
    FlowStateError,
    InputValueError,
    InvalidPathError,
    OutputResolutionError,
    ReadOnlyViolation,
)
from .flow import FlowResolver, FlowSession, StepState, parse_external_inputs, parse_query
from .output import OutputSelection, ResolvedFile, select_outputs
from .storage import load_choices, save_choices

__all__ = [
    "__version__",
    "ChoiceTree",
    "Archetype",
    "DescriptorCache",
    "compile_archetype",
    "load_archetype",
    "ArcheflowError",
    "CyclicInvokeError",
    "DescriptorLoadError",
    "DescriptorValidationError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionTypeError",
    "FlowStateError",
    "InputValueError",
    "InvalidPathError",
    "OutputResolutionError",
    "ReadOnlyViolation",
    "FlowResolver",
    "FlowSession",
    "StepState",
    "parse_external_inputs",
    "parse_query",
    "OutputSelection",
    "ResolvedFile",
    "select_outputs",
    "load_choices",
    "save_choices",
]
