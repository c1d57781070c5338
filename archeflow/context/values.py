"""Conversion of raw strings (defaults, presets, answers) into ContextValues."""

from ..core.models.context import ContextValue, OptionValue, SelectValue, TextValue
from ..errors import InputValueError
from ..utils.expressions import InputSignature

_TRUE = {"true", "yes", "y"}
_FALSE = {"false", "no", "n"}


def parse_value(signature: InputSignature, raw: str | bool | list[str] | tuple[str, ...], path: str = "") -> ContextValue:
    """Convert a raw answer into the ContextValue for an input kind.

    Select answers may be a comma-separated string or a list of option ids.

    Raises:
        InputValueError: If the raw value is not valid for the input
    """
    where = f" for '{path}'" if path else ""

    if signature.kind == "option":
        if isinstance(raw, bool):
            return OptionValue(enabled=raw)
        lowered = str(raw).strip().lower()
        if lowered in _TRUE:
            return OptionValue(enabled=True)
        if lowered in _FALSE:
            return OptionValue(enabled=False)
        raise InputValueError(f"Expected true or false{where}, got '{raw}'")

    if signature.kind == "select":
        if isinstance(raw, (list, tuple)):
            selected = [str(item).strip() for item in raw if str(item).strip()]
        else:
            selected = [item.strip() for item in str(raw).split(",") if item.strip()]
        unknown = [s for s in selected if s not in signature.options]
        if unknown:
            raise InputValueError(
                f"Unknown option(s) {', '.join(unknown)}{where} "
                f"(expected one of: {', '.join(sorted(signature.options))})"
            )
        if not signature.multiple and len(selected) != 1:
            raise InputValueError(f"Expected exactly one option{where}, got {len(selected)}")
        return SelectValue(selected=tuple(selected), multiple=signature.multiple)

    if isinstance(raw, (list, tuple, bool)):
        raise InputValueError(f"Expected text{where}, got {raw!r}")
    return TextValue(text=str(raw))


def empty_value(signature: InputSignature) -> ContextValue:
    """Value recorded for an optional input left unanswered."""
    if signature.kind == "option":
        return OptionValue(enabled=False)
    if signature.kind == "select":
        return SelectValue(selected=(), multiple=signature.multiple)
    return TextValue(text="")
