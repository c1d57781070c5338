"""Shared utilities: choice paths and boolean expressions."""

from .expressions import evaluate, interpolate, parse_expression
from .paths import PathResolver, resolve_relative_to

__all__ = [
    "evaluate",
    "interpolate",
    "parse_expression",
    "PathResolver",
    "resolve_relative_to",
]
