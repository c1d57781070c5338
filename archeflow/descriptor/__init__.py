"""Descriptor loading: XML -> parse tree -> documents -> compiled archetype."""

from .compiler import (
    Archetype,
    CompiledFile,
    CompiledFileSet,
    CompiledModelEntry,
    FlowEntry,
    OutputEntry,
    PresetEntry,
    compile_archetype,
)
from .loader import DescriptorCache, get_cache
from .validator import check_archetype, load_archetype, validate_archetype

__all__ = [
    "Archetype",
    "CompiledFile",
    "CompiledFileSet",
    "CompiledModelEntry",
    "FlowEntry",
    "OutputEntry",
    "PresetEntry",
    "compile_archetype",
    "DescriptorCache",
    "get_cache",
    "check_archetype",
    "load_archetype",
    "validate_archetype",
]
