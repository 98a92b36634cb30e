"""Server command for running the Nudge service."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        host: Annotated[
            str | None,
            typer.Option(
                "--host",
                "-h",
                help="Host to bind to (default: from config)",
            ),
        ] = None,
        port: Annotated[
            int | None,
            typer.Option(
                "--port",
                "-p",
                help="Port to bind to (default: from config)",
            ),
        ] = None,
    ) -> None:
        """Start the Nudge server and scheduler."""
        try:
            asyncio.run(_run_server(config, host, port))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(
    config_path: Path | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the server asynchronously."""
    from nudge.logging import configure_logging

    # Configure logging with Rich for colorful server output and file logging
    configure_logging(use_rich=True, log_to_file=True)

    from nudge.config import load_config_or_default
    from nudge.server.app import create_app
    from nudge.server.runner import ServerRunner

    logger.info("loading_configuration")
    nudge_config = load_config_or_default(config_path)

    bind_host = host or nudge_config.server.host
    bind_port = port or nudge_config.server.port

    app = create_app(nudge_config)
    runner = ServerRunner(app, host=bind_host, port=bind_port)
    await runner.run()
