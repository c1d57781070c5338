"""Resolve command: run the flow and print the render plan."""

import logging
from pathlib import Path

import typer
import yaml
from rich.logging import RichHandler

from ...descriptor import load_archetype
from ...errors import ArcheflowError, InputValueError
from ...flow import FlowSession, parse_external_inputs
from ...storage import load_choices, save_choices
from ..app import app, console, get_json_mode, is_batch_mode
from ..utils import ExitCode, Output

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging for resolution."""
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if debug:
        level = logging.DEBUG

    # Configure root logger
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
        force=True,
    )
    logging.getLogger("archeflow").setLevel(level)


# =============================================================================
# Interactive prompting
# =============================================================================


def _prompt_select(session: FlowSession, entry) -> list[str] | str:
    options = session.available_options(entry)
    default = entry.node.default
    console.print(f"[bold]{entry.label}[/bold]")
    for i, option in enumerate(options, 1):
        marker = " [dim](default)[/dim]" if default and option.id in default.split(",") else ""
        console.print(f"  [{i}] {option.label}{marker}")
    default_idx = ",".join(
        str(i) for i, option in enumerate(options, 1) if default and option.id in default.split(",")
    )
    hint = "Select one or more, comma separated" if entry.node.multiple else "Select"
    choice = typer.prompt(
        f"{hint} [1-{len(options)}]",
        default=default_idx or None,
        show_default=False,
    )
    picked = []
    for part in str(choice).split(","):
        part = part.strip()
        if not part:
            continue
        try:
            idx = int(part) - 1
        except ValueError:
            # User typed the option id instead of number, use as-is
            picked.append(part)
            continue
        if not 0 <= idx < len(options):
            raise InputValueError(f"Choice {part} is out of range")
        picked.append(options[idx].id)
    return picked if entry.node.multiple else ",".join(picked)


def _prompt_input(session: FlowSession, entry):
    node = entry.node
    if node.help:
        console.print(f"[dim]{node.help}[/dim]")
    if entry.kind == "option":
        default = (node.default or "false").strip().lower() in ("true", "yes", "y")
        return typer.confirm(entry.label, default=default)
    if entry.kind == "select":
        return _prompt_select(session, entry)
    default = node.default
    if default is None and node.optional:
        default = ""
    return typer.prompt(entry.label, default=default)


def _run_interactive(session: FlowSession) -> None:
    while (step := session.next_step()) is not None:
        console.print()
        console.rule(f"[bold cyan]{step.label}[/bold cyan]")
        if step.node.help:
            console.print(f"[dim]{step.node.help}[/dim]")

        if step.node.optional and not typer.confirm(f"Configure {step.label}?", default=False):
            session.continue_step(step)
            continue

        while True:
            unanswered = [e for e in session.visible_inputs(step) if e.path not in session.tree]
            if not unanswered:
                break
            entry = unanswered[0]
            try:
                session.submit_entry(entry, _prompt_input(session, entry))
            except InputValueError as e:
                console.print(f"[red]✗[/red] {e}")


# =============================================================================
# Command
# =============================================================================


@app.command("resolve")
def resolve_command(
    archetype_dir: Path = typer.Argument(..., help="Archetype directory (or entry descriptor file)"),
    inputs: list[str] = typer.Option(
        None, "--input", "-i", help="External input as path=value (repeatable)"
    ),
    answers_file: Path = typer.Option(
        None, "--answers", "-a", help="YAML file mapping input paths to answers"
    ),
    batch: bool = typer.Option(
        False, "--batch", help="Do not prompt: use answers, then defaults"
    ),
    choices_file: Path = typer.Option(
        None,
        "--choices-file",
        help="Properties file of saved choices: read as external inputs, then updated",
    ),
    plan: Path = typer.Option(None, "--plan", "-p", help="Write the render plan to this YAML file"),
    entry: str = typer.Option(None, "--entry", "-e", help="Entry descriptor name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs"),
):
    """
    Resolve an archetype's flow and print the selected files and model.

    Interactive by default. With --batch (or --json, or cli.mode=batch in
    config) every step takes its answers from --answers, then defaults.

    EXIT CODES:
        0 = Success
        1 = Validation error
        2 = Flow error (bad input, read-only conflict, unanswered step)
        3 = Descriptor not found, malformed or cyclic
        4 = Output resolution error
        10 = User cancelled

    EXAMPLES:
        archeflow resolve ./my-archetype
        archeflow resolve ./my-archetype --batch -i app.name=demo --plan plan.yaml
        archeflow --json resolve ./my-archetype --answers answers.yaml
    """
    setup_logging(verbose, debug)
    json_mode = get_json_mode()
    out = Output(console=console, json_mode=json_mode)

    try:
        archetype = load_archetype(archetype_dir, entry)
        external = load_choices(choices_file) if choices_file else {}
        external.update(parse_external_inputs(inputs or []))

        answers = {}
        if answers_file:
            if not answers_file.is_file():
                out.error(f"Answers file not found: {answers_file}", exit_code=ExitCode.LOAD_ERROR)
                raise typer.Exit(out.finish())
            answers = yaml.safe_load(answers_file.read_text()) or {}
            if not isinstance(answers, dict):
                raise InputValueError(f"{answers_file} must contain a mapping of path: value")

        session = FlowSession(archetype, external=external)
        if batch or json_mode or is_batch_mode():
            session.run_batch(answers)
        else:
            _run_interactive(session)

        selection = session.result()
    except typer.Abort:
        out.error("Cancelled", exit_code=ExitCode.USER_CANCELLED)
        raise typer.Exit(out.finish())
    except ArcheflowError as e:
        out.report(e)
        raise typer.Exit(out.finish())

    out.blank()
    out.table(
        "Files",
        ["Target", "Engine", "Source"],
        [[f.target, f.engine or "copy", str(f.source)] for f in selection.files],
        data_key="files",
    )
    out.set_data("model", selection.model)
    out.set_data("choices", selection.choices)
    if not json_mode and selection.model:
        console.print()
        console.print("[bold]Model[/bold]")
        console.print(yaml.safe_dump(selection.model, sort_keys=False, allow_unicode=True))

    if plan:
        selection.to_yaml(plan)
        out.success(f"Render plan written to {plan}", plan=str(plan))
    if choices_file:
        save_choices(session.tree, choices_file)
        out.success(f"Choices saved to {choices_file}", choices_file=str(choices_file))

    out.success(
        f"Resolved {len(selection.choices)} choices, {len(selection.files)} files",
        file_count=len(selection.files),
    )
    raise typer.Exit(out.finish())
