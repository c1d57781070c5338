"""Descriptor validation.

Validates a compiled Archetype before any user interaction: every path,
expression, default, preset and transformation reference is checked and
all problems are reported together.
"""

import logging
import re
from pathlib import Path

from ..config import get_config
from ..context.values import parse_value
from ..core.models import Severity, ValidationIssue, ValidationResult
from ..errors import DescriptorValidationError, InputValueError
from ..utils.paths import resolve_relative_to
from .compiler import Archetype, CompiledModelEntry, compile_archetype
from .loader import DescriptorCache

logger = logging.getLogger(__name__)

TEMPLATE_ENGINES = frozenset({"mustache", "jinja"})


# Helper functions to create ValidationIssue with appropriate severity
def ValidationError(
    category: str,
    location: str,
    message: str,
    suggestion: str | None = None,
) -> ValidationIssue:
    """Create an ERROR-level validation issue."""
    return ValidationIssue(
        severity=Severity.ERROR,
        category=category,
        location=location,
        message=message,
        suggestion=suggestion,
    )


def ValidationWarning(
    category: str,
    location: str,
    message: str,
    suggestion: str | None = None,
) -> ValidationIssue:
    """Create a WARNING-level validation issue."""
    return ValidationIssue(
        severity=Severity.WARNING,
        category=category,
        location=location,
        message=message,
        suggestion=suggestion,
    )


def _where(source: Path, path: str) -> str:
    return f"{source.name}:{path or '<root>'}"


# =============================================================================
# Checks
# =============================================================================


def _check_flow(archetype: Archetype) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    for entry in archetype.entries:
        where = _where(entry.source, entry.path)
        node = entry.node

        if entry.is_input and archetype.step_of(entry) is None:
            issues.append(
                ValidationError(
                    "structure",
                    where,
                    f"Input '{entry.path}' is not declared inside a step",
                    suggestion="Wrap the input in a <flow-step>",
                )
            )

        if entry.kind == "select" and not archetype.choices(entry):
            issues.append(ValidationError("structure", where, f"Select '{entry.path}' has no options"))

        if entry.is_input and node.default is not None:
            try:
                parse_value(archetype.signature(entry.path), node.default, entry.path)
            except InputValueError as e:
                issues.append(ValidationError("default", where, f"Invalid default: {e}"))

        if entry.is_step:
            inputs = archetype.step_inputs(entry)
            if node.optional:
                for child in inputs:
                    if not child.node.has_default and not child.node.optional:
                        issues.append(
                            ValidationError(
                                "optional_step",
                                _where(child.source, child.path),
                                f"Optional step '{entry.path}' contains input "
                                f"'{child.path}' without a default",
                                suggestion="Add a default value or make the step required",
                            )
                        )
            if not inputs:
                issues.append(ValidationWarning("structure", where, f"Step '{entry.path}' has no inputs"))

    return issues


def _check_presets(archetype: Archetype) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for preset in archetype.presets:
        where = _where(preset.source, preset.scope)
        for path, raw in preset.values:
            entry = archetype.entry_at(path)
            if entry is None or not entry.is_input:
                issues.append(ValidationError("preset", where, f"Preset target '{path}' is not an input"))
                continue
            try:
                parse_value(archetype.signature(path), raw, path)
            except InputValueError as e:
                issues.append(ValidationError("preset", where, f"Invalid preset value: {e}"))
    return issues


def _check_model(entry: CompiledModelEntry, source: Path, where: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    decl = entry.entry
    if decl.kind == "value":
        if decl.template is not None and decl.template not in TEMPLATE_ENGINES:
            issues.append(
                ValidationError(
                    "model",
                    where,
                    f"Unknown template engine '{decl.template}' for model key '{decl.key}'",
                    suggestion=f"Use one of: {', '.join(sorted(TEMPLATE_ENGINES))}",
                )
            )
        if decl.file is not None and not resolve_relative_to(decl.file, source).is_file():
            issues.append(
                ValidationWarning("model", where, f"Model file '{decl.file}' does not exist")
            )
    for child in entry.children:
        issues.extend(_check_model(child, source, where))
    return issues


def _check_outputs(archetype: Archetype) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    declared = archetype.transformations()

    for transformation_id, definitions in declared.items():
        distinct = {definition for _, definition in definitions}
        if len(distinct) > 1:
            output = archetype.outputs[definitions[0][0]]
            issues.append(
                ValidationError(
                    "transformation",
                    _where(output.source, output.scope),
                    f"Transformation '{transformation_id}' is declared {len(distinct)} times with different replacements",
                )
            )

    for output in archetype.outputs:
        where = _where(output.source, output.scope)
        for transformation in output.transformations:
            for replacement in transformation.replacements:
                try:
                    re.compile(replacement.regex)
                except re.error as e:
                    issues.append(
                        ValidationError(
                            "transformation",
                            where,
                            f"Invalid regex '{replacement.regex}' in transformation '{transformation.id}': {e}",
                        )
                    )
        for file_set in output.file_sets:
            decl = file_set.decl
            for ref in decl.transformations:
                if ref not in declared:
                    issues.append(
                        ValidationError(
                            "transformation",
                            where,
                            f"Unknown transformation '{ref}' referenced by <{decl.kind}> '{decl.directory}'",
                            suggestion=f"Declared: {', '.join(sorted(declared)) or 'none'}",
                        )
                    )
            if decl.engine is not None and decl.engine not in TEMPLATE_ENGINES:
                issues.append(ValidationWarning("output", where, f"Unknown template engine '{decl.engine}'"))
            if not resolve_relative_to(decl.directory, output.source).is_dir():
                issues.append(
                    ValidationWarning("output", where, f"Directory '{decl.directory}' does not exist")
                )
        for model in output.model:
            issues.extend(_check_model(model, output.source, where))
    return issues


def validate_archetype(archetype: Archetype) -> ValidationResult:
    """Run the structural checks that need the whole compiled archetype."""
    result = ValidationResult()
    result.extend(_check_flow(archetype))
    result.extend(_check_presets(archetype))
    result.extend(_check_outputs(archetype))
    return result


# =============================================================================
# Loading
# =============================================================================


def _entry_file(location: Path | str, entry: str | None) -> Path:
    location = Path(location)
    if location.is_file():
        return location
    return location / (entry or get_config().resolver.entry_descriptor)


def check_archetype(
    location: Path | str,
    entry: str | None = None,
    cache: DescriptorCache | None = None,
    common_prefix: str | None = None,
) -> tuple[Archetype, ValidationResult]:
    """Compile and validate without raising on validation errors.

    Args:
        location: Archetype directory, or the entry descriptor itself
        entry: Entry descriptor name inside the directory
        cache: Descriptor cache
        common_prefix: Default common prefix

    Raises:
        DescriptorLoadError: If a descriptor is missing, malformed or cyclic
    """
    if common_prefix is None:
        common_prefix = get_config().resolver.common_prefix
    result = ValidationResult()
    archetype = compile_archetype(
        _entry_file(location, entry), cache=cache, common_prefix=common_prefix, result=result
    )
    result.extend(validate_archetype(archetype).issues)
    return archetype, result


def load_archetype(
    location: Path | str,
    entry: str | None = None,
    cache: DescriptorCache | None = None,
    common_prefix: str | None = None,
) -> Archetype:
    """Compile and validate an archetype, raising on any validation error.

    Raises:
        DescriptorLoadError: If a descriptor is missing, malformed or cyclic
        DescriptorValidationError: With every validation error found
    """
    archetype, result = check_archetype(location, entry, cache, common_prefix)
    for warning in result.warnings:
        logger.warning("%s: %s", warning.location, warning.message)
    if not result.valid:
        raise DescriptorValidationError(result)
    return archetype
