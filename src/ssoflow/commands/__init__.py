"""ssoflow CLI commands.

Each command module contains the business logic for a CLI command.
The cli.py module handles typer options and argument parsing,
then delegates to these command functions.
"""

from ssoflow.commands.serve import serve_command
from ssoflow.commands.status import load_overrides, status_command
from ssoflow.commands.steps import steps_command, vars_command

__all__ = [
    "load_overrides",
    "serve_command",
    "status_command",
    "steps_command",
    "vars_command",
]
