"""Caddy reverse proxy CLI command."""
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def caddy(
    domain: Optional[str] = typer.Argument(None, help="Domain for automatic HTTPS (e.g. mysubdomain.duckdns.org)"),
    upstream: str = typer.Option("localhost:3000", "--upstream", "-u", help="host:port to proxy to"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """Install Caddy and reverse proxy to a local app.

    Without DOMAIN Caddy serves plain HTTP on port 80. With DOMAIN it
    obtains a Let's Encrypt certificate for it automatically.

    Examples:
        sudo piprov caddy                          # HTTP only
        sudo piprov caddy mysubdomain.duckdns.org  # HTTPS
    """
    from piprov.cli_support import get_runner, handle_cli_error, make_confirm, print_info, print_success, print_warning
    from piprov.models.caddy import CaddySite
    from piprov.services.caddy import CaddySetup

    try:
        site = CaddySite(domain=domain, upstream=upstream)
        runner = get_runner()
        result = CaddySetup(site, runner=runner, confirm=make_confirm(yes, runner.mock)).run()
    except (ProvisionError, ValidationError) as e:
        handle_cli_error(e, console)
        return

    if result.cancelled:
        print_warning(console, "Installation cancelled")
        return

    print_success(console, "Caddy installation and configuration complete")
    if site.use_https:
        print_info(console, f"Your app is available at: https://{site.domain}")
        print_info(console, "Ports 80 and 443 must be reachable for certificate issuance")
    else:
        print_info(console, "Your app is available at: http://<server-ip>")
    print_info(console, f"Caddyfile: {result.caddyfile}")
    if result.backup_path:
        print_info(console, f"Previous Caddyfile saved to: {result.backup_path}")


def register_caddy_commands(app: typer.Typer, shared_console: Console):
    """Register the caddy command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(caddy)
