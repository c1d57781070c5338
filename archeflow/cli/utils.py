"""CLI output helpers: rich terminal output or a single JSON document.

Commands report through :class:`Output`, which prints as it goes in human
mode and, with ``--json``, collects everything into one object printed by
``finish()``:

    {"status": "error", "exit_code": 1, "issues": [...], ...}
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from ..core.models.validation import Severity, ValidationIssue
from ..errors import (
    ArcheflowError,
    DescriptorLoadError,
    DescriptorValidationError,
    OutputResolutionError,
)


class ExitCode:
    """Process exit codes shared by all commands.

        0 = Success
        1 = Validation error (fix the descriptors first)
        2 = Flow error (bad input, read-only conflict, unanswered step)
        3 = Descriptor not found, unreadable or cyclic
        4 = Output resolution error
        10 = User cancelled
    """

    SUCCESS = 0
    VALIDATION_ERROR = 1
    FLOW_ERROR = 2
    LOAD_ERROR = 3
    OUTPUT_ERROR = 4
    USER_CANCELLED = 10


def exit_code_for(error: ArcheflowError) -> int:
    """Map an archeflow error to its exit code."""
    if isinstance(error, DescriptorValidationError):
        return ExitCode.VALIDATION_ERROR
    if isinstance(error, DescriptorLoadError):
        return ExitCode.LOAD_ERROR
    if isinstance(error, OutputResolutionError):
        return ExitCode.OUTPUT_ERROR
    return ExitCode.FLOW_ERROR


class Output:
    """Reports command progress, issues and results in human or JSON mode."""

    def __init__(self, console: Console, json_mode: bool = False):
        self.console = console
        self.json_mode = json_mode
        self.exit_code = ExitCode.SUCCESS
        self.data: dict[str, Any] = {"status": "success", "issues": []}

    def success(self, message: str, **data: Any) -> None:
        if self.json_mode:
            self.data.update(data)
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def issue(
        self,
        issue: ValidationIssue,
        as_error: bool = False,
        exit_code: int = ExitCode.VALIDATION_ERROR,
    ) -> None:
        """Report a validation issue; errors (or ``as_error``) fail the command."""
        failing = as_error or issue.severity == Severity.ERROR
        if failing:
            self._fail(exit_code)
        if self.json_mode:
            self.data["issues"].append(issue.model_dump(mode="json"))
            return
        mark = "[red]✗[/red]" if failing else "[yellow]⚠[/yellow]"
        self.console.print(f"{mark} {issue.location}: {issue.message}")
        if issue.suggestion:
            self.console.print(f"  [dim]→ {issue.suggestion}[/dim]")

    def error(self, message: str, exit_code: int, category: str = "error") -> None:
        self._fail(exit_code)
        if self.json_mode:
            self.data["issues"].append(
                {"severity": "error", "category": category, "message": message}
            )
        else:
            self.console.print(f"[red]✗[/red] {message}")

    def report(self, error: ArcheflowError) -> None:
        """Report a raised archeflow error, one issue per validation error."""
        code = exit_code_for(error)
        if isinstance(error, DescriptorValidationError):
            for issue in error.result.errors:
                self.issue(issue, exit_code=code)
        else:
            self.error(str(error), code, category=type(error).__name__)

    def _fail(self, exit_code: int) -> None:
        self.data["status"] = "error"
        if self.exit_code == ExitCode.SUCCESS:
            self.exit_code = exit_code

    def blank(self) -> None:
        if not self.json_mode:
            self.console.print()

    def table(self, title: str, columns: list[str], rows: list[list[str]], data_key: str) -> None:
        """Print a table, or store its rows as ``{column: cell}`` dicts under ``data_key``."""
        if self.json_mode:
            self.data[data_key] = [dict(zip(columns, row)) for row in rows]
            return
        table = Table(title=title, show_header=True, header_style="bold")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)

    def set_data(self, key: str, value: Any) -> None:
        self.data[key] = value

    def finish(self) -> int:
        """Print the JSON document (in JSON mode) and return the exit code."""
        if self.json_mode:
            self.data["exit_code"] = self.exit_code
            print(json.dumps(self.data, indent=2, default=str))
        return self.exit_code
