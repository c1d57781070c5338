"""Config command for viewing and managing archeflow configuration."""

import typer

from ... import config as config_module
from ...config import CLI_MODES, get_config, reset_config
from ...descriptor.validator import TEMPLATE_ENGINES
from ..app import app, console


VALID_KEYS = {
    "resolver.entry_descriptor",
    "resolver.common_prefix",
    "resolver.choices_file",
    "resolver.choices_prefix",
    "output.default_engine",
    "cli.mode",
}

ALLOWED_VALUES = {
    "output.default_engine": tuple(sorted(TEMPLATE_ENGINES)),
    "cli.mode": CLI_MODES,
}


@app.command("config")
def config_command(
    action: str = typer.Argument(
        ...,
        help="Action: show, set, reset",
    ),
    key: str | None = typer.Argument(
        None,
        help="Config key (e.g. resolver.common_prefix, cli.mode)",
    ),
    value: str | None = typer.Argument(
        None,
        help="Value to set",
    ),
):
    """View or modify archeflow configuration.

    Examples:
        archeflow config show
        archeflow config set resolver.common_prefix app
        archeflow config set cli.mode batch
        archeflow config reset
    """
    if action == "show":
        _show_config()
    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage:[/red] archeflow config set <key> <value>")
            console.print()
            _print_keys()
            raise typer.Exit(1)
        _set_config(key, value)
    elif action == "reset":
        _reset_config()
    else:
        console.print(f"[red]Unknown action:[/red] {action}")
        console.print("Valid actions: show, set, reset")
        raise typer.Exit(1)


def _print_keys():
    console.print("Available keys:")
    for k in sorted(VALID_KEYS):
        console.print(f"  {k}")


def _show_config():
    """Display current resolved configuration."""
    config = get_config()

    console.print()
    console.print("[bold]Archeflow Configuration[/bold]")
    console.print("─" * 40)

    console.print()
    console.print("[bold cyan]Resolver[/bold cyan]")
    prefix = config.resolver.common_prefix or "[dim](none)[/dim]"
    console.print(f"  entry_descriptor = {config.resolver.entry_descriptor}")
    console.print(f"  common_prefix    = {prefix}")
    console.print(f"  choices_file     = {config.resolver.choices_file}")
    console.print(f"  choices_prefix   = {config.resolver.choices_prefix}")

    console.print()
    console.print("[bold cyan]Output[/bold cyan]")
    console.print(f"  default_engine   = {config.output.default_engine}")

    console.print()
    console.print("[bold cyan]CLI[/bold cyan]")
    console.print(f"  mode             = {config.cli.mode}")

    console.print()
    if config_module.CONFIG_FILE.exists():
        console.print(f"Config file: {config_module.CONFIG_FILE}")
    else:
        console.print(f"Config file: [dim]not created yet[/dim] ({config_module.CONFIG_FILE})")
    console.print()


def _set_config(key: str, value: str):
    """Set a config value and save."""
    if key not in VALID_KEYS:
        console.print(f"[red]Unknown key:[/red] {key}")
        console.print()
        _print_keys()
        raise typer.Exit(1)

    allowed = ALLOWED_VALUES.get(key)
    if allowed and value not in allowed:
        console.print(f"[red]Invalid value:[/red] {value} (expected one of: {', '.join(allowed)})")
        raise typer.Exit(1)

    config = get_config()
    zone, field_name = key.split(".", 1)
    setattr(getattr(config, zone), field_name, value)

    config.save()
    reset_config()  # Clear cached singleton so next get_config() reloads

    console.print(f"[green]✓[/green] Set {key} = {value}")
    console.print(f"  Saved to {config_module.CONFIG_FILE}")


def _reset_config():
    """Reset config to defaults."""
    if config_module.CONFIG_FILE.exists():
        config_module.CONFIG_FILE.unlink()
        reset_config()
        console.print("[green]✓[/green] Config reset to defaults")
        console.print(f"  Removed {config_module.CONFIG_FILE}")
    else:
        console.print("Config already at defaults (no config file exists)")
