"""Validate command for archetype descriptors."""

from pathlib import Path

import typer

from ...descriptor import check_archetype
from ...errors import ArcheflowError
from ..app import app, console, get_json_mode
from ..utils import ExitCode, Output


@app.command("validate")
def validate_command(
    archetype_dir: Path = typer.Argument(
        ..., help="Archetype directory (or entry descriptor file)"
    ),
    entry: str = typer.Option(
        None, "--entry", "-e", help="Entry descriptor name inside the directory"
    ),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as errors"),
):
    """
    Validate every descriptor reachable from the entry descriptor.

    Checks paths, expressions, optional steps, defaults, presets and
    transformation references, and reports all problems at once.

    EXIT CODES:
        0 = Success (valid archetype)
        1 = Validation error
        3 = Descriptor not found, malformed or cyclic

    EXAMPLES:
        archeflow validate ./my-archetype
        archeflow validate ./my-archetype/flavors.xml --strict
    """
    out = Output(console=console, json_mode=get_json_mode())
    out.blank()

    if not archetype_dir.exists():
        out.error(f"Not found: {archetype_dir.absolute()}", ExitCode.LOAD_ERROR)
        raise typer.Exit(out.finish())

    try:
        archetype, result = check_archetype(archetype_dir, entry)
    except ArcheflowError as e:
        out.report(e)
        raise typer.Exit(out.finish())

    out.success(
        f"Loaded {archetype.entry.name} ({len(archetype.documents)} descriptor(s))",
        entry=str(archetype.entry),
        documents=[str(d) for d in archetype.documents],
    )

    for issue in result.issues:
        out.issue(issue, as_error=strict)

    out.set_data(
        "validation",
        {"valid": result.valid, "errors": len(result.errors), "warnings": len(result.warnings)},
    )
    if result.valid and (not strict or not result.warnings):
        out.blank()
        out.success(
            f"Archetype valid: {len(archetype.steps())} steps, "
            f"{len(archetype.inputs())} inputs, {len(archetype.outputs)} output blocks",
            steps=len(archetype.steps()),
            inputs=len(archetype.inputs()),
            outputs=len(archetype.outputs),
        )

    raise typer.Exit(out.finish())
