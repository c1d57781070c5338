"""Run-time choice storage."""

from .tree import ChoiceTree
from .values import empty_value, parse_value

__all__ = ["ChoiceTree", "empty_value", "parse_value"]
