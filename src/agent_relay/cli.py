"""Main CLI entry point for agent-relay."""

from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel

from agent_relay.constants import DAEMON_LOG_PORT_IN_USE, DEFAULT_HOST, VERSION

# AGENT_RELAY_* settings may live in a .env file next to the project
load_dotenv(Path.cwd() / ".env", verbose=False)

PROJECT_TAGLINE = "Relay coding-assistant sessions to any device over a public tunnel"

app = typer.Typer(
    name="relay",
    help=PROJECT_TAGLINE,
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.command("serve")
def serve(
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to listen on (defaults to the configured port)",
    ),
    host: str = typer.Option(
        DEFAULT_HOST,
        "--host",
        help="Interface to bind",
    ),
    project_root: Path | None = typer.Option(
        None,
        "--project-root",
        "-r",
        help="Project the assistant works in (defaults to the current directory)",
        file_okay=False,
        resolve_path=True,
    ),
    tunnel: bool = typer.Option(
        True,
        "--tunnel/--no-tunnel",
        help="Auto-start the public tunnel",
    ),
    log_file: bool = typer.Option(
        False,
        "--log-file/--no-log-file",
        help="Write logs to .relay/relay.log instead of the console",
    ),
) -> None:
    """Run the relay daemon in the foreground."""
    import uvicorn

    from agent_relay.daemon.server import create_app
    from agent_relay.daemon.state import get_state
    from agent_relay.utils.platform import find_pid_by_port

    fastapi_app = create_app(
        project_root=project_root,
        port=port,
        tunnel_enabled=tunnel,
        log_to_file=log_file,
    )

    bound_port = get_state().port
    pid = find_pid_by_port(bound_port)
    if pid is not None:
        console.print(f"[yellow]{DAEMON_LOG_PORT_IN_USE.format(port=bound_port, pid=pid)}[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        f"[bold cyan]agent-relay[/bold cyan] listening on "
        f"[green]http://{host}:{bound_port}[/green]"
        + ("" if tunnel else " [dim](tunnel disabled)[/dim]")
    )
    uvicorn.run(
        fastapi_app,
        host=host,
        port=bound_port,
        log_level="warning",
        access_log=False,
    )


@app.command("version")
def version() -> None:
    """Show version information."""
    console.print(
        Panel(
            f"[bold cyan]agent-relay[/bold cyan] version [green]{VERSION}[/green]\n\n"
            f"{PROJECT_TAGLINE}",
            title="Version",
            style="cyan",
        )
    )


if __name__ == "__main__":
    app()
