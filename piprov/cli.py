#!/usr/bin/env python3
"""piprov CLI - provisioning commands for Raspberry Pi and Ubuntu hosts."""
from typing import Optional

import typer

from piprov.cli_caddy_commands import register_caddy_commands
from piprov.cli_docker_commands import register_docker_commands
from piprov.cli_git_commands import register_git_commands
from piprov.cli_network_commands import register_network_commands
from piprov.cli_node_commands import register_node_commands
from piprov.cli_pi_commands import register_pi_commands
from piprov.cli_runner_commands import register_runner_commands
from piprov.cli_utility_commands import register_utility_commands
from piprov.core.logger import console, get_logger

app = typer.Typer(
    name="piprov",
    help="""piprov - provision a Raspberry Pi or Ubuntu server

One command per job. Every config file it touches is backed up,
verified, and restored if verification fails.

Quick start:
  sudo piprov static-ip 192.168.0.10/24 192.168.0.1   # Fixed address
  piprov node                                          # Node.js via nvm
  piprov pm2 ~/my-app                                  # Keep it running
  sudo piprov caddy my.duckdns.org                     # HTTPS in front

Dry run any command with PIPROV_MOCK=1.
""",
    add_completion=False,
)

logger = get_logger(__name__)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options shared by every command."""
    from piprov.cli_support import setup_file_logging
    setup_file_logging(log_file=log_file, verbose=verbose)


# Attach modular subcommands
register_caddy_commands(app, console)
register_docker_commands(app, console)
register_network_commands(app, console)
register_node_commands(app, console)
register_git_commands(app, console)
register_pi_commands(app, console)
register_runner_commands(app, console)
register_utility_commands(app, console)

if __name__ == "__main__":
    app()
