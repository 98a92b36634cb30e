"""Main CLI application."""

import typer

from nudge.cli.commands import config, schedule, serve

app = typer.Typer(
    name="nudge",
    help="Nudge - scheduled notification delivery",
    no_args_is_help=True,
)

serve.register(app)
schedule.register(app)
config.register(app)


if __name__ == "__main__":
    app()
