"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from nudge.cli.console import console, create_table, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $NUDGE_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from nudge.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            _config_show(expanded_path)
        elif action == "validate":
            _config_validate(expanded_path)
        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)


def _config_show(path: Path) -> None:
    from rich.syntax import Syntax

    if not path.exists():
        error(f"Config file not found: {path}")
        raise typer.Exit(1)

    # Display raw TOML with syntax highlighting
    content = path.read_text()
    syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
    console.print(f"[bold]Config file: {path}[/bold]\n")
    console.print(syntax)


def _config_validate(path: Path) -> None:
    from pydantic import ValidationError

    from nudge.config import ConfigError, load_config

    if not path.exists():
        error(f"Config file not found: {path}")
        raise typer.Exit(1)

    try:
        config_obj = load_config(path)
    except ValidationError as e:
        error("Configuration validation failed:")
        console.print()
        for err in e.errors():
            loc = ".".join(str(x) for x in err["loc"]) or "config"
            console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
        raise typer.Exit(1) from None
    except Exception as e:
        error(f"Error loading config: {e}")
        raise typer.Exit(1) from None

    table = create_table(
        "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
    )

    store = config_obj.store
    if store.backend == "memory":
        store_location = "[dim]in memory[/dim]"
    elif store.backend == "sqlite" and store.database_url:
        store_location = store.database_url
    else:
        try:
            store_location = str(store.resolve_path())
        except ConfigError as e:
            store_location = f"[red]{e}[/red]"
    table.add_row("Store", f"{store.backend} ({store_location})")
    table.add_row("History limit", str(config_obj.scheduler.history_limit))
    table.add_row("Store poll", f"{config_obj.scheduler.poll_interval:g}s")

    dispatcher = config_obj.dispatcher
    table.add_row("Dispatcher", dispatcher.backend)
    for name, destination in sorted(dispatcher.destinations.items()):
        status = (
            "[green]✓[/green]" if destination.url is not None else "[yellow]?[/yellow]"
        )
        table.add_row(f"Destination '{name}'", f"{destination.format} {status}")

    table.add_row("Server", f"{config_obj.server.host}:{config_obj.server.port}")

    success("Configuration is valid!")
    console.print()
    console.print(table)
