"""CLI commands for archeflow."""

from . import validate, steps, resolve, config_cmd

__all__ = ["validate", "steps", "resolve", "config_cmd"]
