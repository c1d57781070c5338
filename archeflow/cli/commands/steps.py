"""Steps command: list the flow of an archetype."""

from pathlib import Path

import typer

from ...descriptor import load_archetype
from ...errors import ArcheflowError
from ..app import app, console, get_json_mode
from ..utils import Output


def _describe_input(archetype, entry) -> str:
    node = entry.node
    text = f"{entry.path} ({entry.kind}"
    if entry.kind == "select":
        if node.multiple:
            text += ", multiple"
        text += ": " + "|".join(c.id for c in archetype.choices(entry))
    if node.default is not None:
        text += f", default={node.default}"
    return text + ")"


@app.command("steps")
def steps_command(
    archetype_dir: Path = typer.Argument(..., help="Archetype directory (or entry descriptor file)"),
    entry: str = typer.Option(None, "--entry", "-e", help="Entry descriptor name"),
):
    """
    List every step of an archetype with its inputs, in flow order.

    EXAMPLES:
        archeflow steps ./my-archetype
        archeflow --json steps ./my-archetype
    """
    out = Output(console=console, json_mode=get_json_mode())

    try:
        archetype = load_archetype(archetype_dir, entry)
    except ArcheflowError as e:
        out.report(e)
        raise typer.Exit(out.finish())

    rows = []
    for step in archetype.steps():
        inputs = archetype.step_inputs(step)
        rows.append(
            [
                step.path,
                step.label,
                "yes" if step.node.optional else "no",
                "\n".join(_describe_input(archetype, i) for i in inputs) or "-",
            ]
        )
    out.table(
        archetype.name or archetype.entry.name,
        ["Path", "Label", "Optional", "Inputs"],
        rows,
        data_key="steps",
    )
    raise typer.Exit(out.finish())
