"""ssoflow CLI - Main entry point.

Commands:
- steps: List the federation steps
- status: Show effective step status for a saved state
- vars: Show the variable catalog
- serve: Start the web server for sign-in and step execution
"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from ssoflow import __version__
from ssoflow.commands import serve_command, status_command, steps_command, vars_command

app = typer.Typer(
    help="ssoflow - Google Workspace and Microsoft Entra SSO federation.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"ssoflow {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """ssoflow - Google Workspace and Microsoft Entra SSO federation."""
    pass


@app.command()
def steps() -> None:
    """List the federation steps with what each requires and provides.

    Examples:
        ssoflow steps
    """
    steps_command()


@app.command()
def status(
    state: Annotated[
        Optional[Path],
        typer.Option("--state", "-s", help="Saved workflow state (JSON)"),
    ] = None,
    vars_file: Annotated[
        Optional[Path],
        typer.Option("--vars", help="Variable overrides (YAML mapping)"),
    ] = None,
) -> None:
    """Show the effective status of each step.

    Examples:
        ssoflow status --state .ssoflow/state.json
        ssoflow status --state state.json --vars overrides.yaml
    """
    status_command(state, vars_file)


@app.command("vars")
def vars_cmd(
    state: Annotated[
        Optional[Path],
        typer.Option("--state", "-s", help="Saved workflow state (JSON)"),
    ] = None,
    vars_file: Annotated[
        Optional[Path],
        typer.Option("--vars", help="Variable overrides (YAML mapping)"),
    ] = None,
) -> None:
    """Show the variable catalog. Sensitive values are redacted.

    Examples:
        ssoflow vars
        ssoflow vars --state .ssoflow/state.json
    """
    vars_command(state, vars_file)


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", "-H", help="Host to bind")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port to bind")] = 8000,
) -> None:
    """Start the ssoflow web server.

    Examples:
        ssoflow serve
        ssoflow serve --port 3000
    """
    serve_command(host, port)


if __name__ == "__main__":
    app()
