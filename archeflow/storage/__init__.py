"""Persistence of resolved choices."""

from .choices import load_choices, save_choices

__all__ = ["load_choices", "save_choices"]
