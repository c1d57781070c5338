"""Error taxonomy for archeflow.

Structural problems (bad descriptors, paths, expressions) are raised at
descriptor build time. Runtime errors (read-only conflicts, missing model
files, bad answers) surface immediately with the offending path or key.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .core.models.validation import ValidationResult


class ArcheflowError(Exception):
    """Base class for all archeflow errors."""

    pass


# =============================================================================
# Descriptor loading and validation
# =============================================================================


class DescriptorLoadError(ArcheflowError):
    """Raised when a descriptor file is missing, unreadable or malformed."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class CyclicInvokeError(DescriptorLoadError):
    """Raised when invoke/include directives form a cycle."""

    def __init__(self, chain: list[str]):
        self.chain = list(chain)
        super().__init__("Cyclic invoke detected: " + " -> ".join(self.chain))


class DescriptorValidationError(ArcheflowError):
    """Raised when eager descriptor validation finds errors.

    Carries the full ValidationResult so callers can report every issue
    at once instead of failing on the first one.
    """

    def __init__(self, result: "ValidationResult"):
        self.result = result
        lines = [f"{issue.location}: {issue.message}" for issue in result.errors]
        summary = f"Descriptor validation failed with {len(lines)} error(s)"
        super().__init__(summary + ("\n  " + "\n  ".join(lines) if lines else ""))


class InvalidPathError(ArcheflowError):
    """Raised when a path cannot be resolved to a declared flow node."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path '{path}': {reason}")


# =============================================================================
# Expressions
# =============================================================================


class ExpressionError(ArcheflowError):
    """Base class for expression errors."""

    pass


class ExpressionSyntaxError(ExpressionError):
    """Raised when an expression cannot be tokenized or parsed."""

    pass


class ExpressionTypeError(ExpressionError):
    """Raised when an operator is applied to an incompatible input kind."""

    pass


# =============================================================================
# Runtime
# =============================================================================


class ReadOnlyViolation(ArcheflowError):
    """Raised when a read-only choice would be overwritten with a new value."""

    def __init__(self, path: str, current: object, requested: object):
        self.path = path
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change read-only value at '{path}' "
            f"from {current!r} to {requested!r}"
        )


class InputValueError(ArcheflowError, ValueError):
    """Raised when a submitted or external value is invalid for its input."""

    pass


class FlowStateError(ArcheflowError):
    """Raised when a flow action is not permitted in the current state."""

    pass


class OutputResolutionError(ArcheflowError):
    """Raised when selected outputs cannot be resolved (missing files, globs, keys)."""

    pass
