"""Flow resolution: step states, defaults, presets and sessions."""

from .resolver import FlowResolver, Reach, StepState
from .session import FlowSession, parse_external_inputs, parse_query

__all__ = [
    "FlowResolver",
    "Reach",
    "StepState",
    "FlowSession",
    "parse_external_inputs",
    "parse_query",
]
