"""Output selection and template model merging."""

from .model import ChoiceNamespace, choice_data, merge_model, render_template
from .selector import OutputSelection, ResolvedFile, glob_to_regex, select_outputs

__all__ = [
    "ChoiceNamespace",
    "choice_data",
    "merge_model",
    "render_template",
    "OutputSelection",
    "ResolvedFile",
    "glob_to_regex",
    "select_outputs",
]
