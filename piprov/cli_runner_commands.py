"""GitHub Actions self-hosted runner CLI command."""
import typer
from pydantic import ValidationError
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def runner(
    org_name: str = typer.Argument(..., help="GitHub organisation"),
    token: str = typer.Argument(..., help="Runner registration token"),
    labels: str = typer.Argument(..., help="Comma-separated labels, e.g. deployment,development"),
):
    """Register this host as a self-hosted GitHub Actions runner.

    Runs as the locked 'github' user and is installed as a systemd service.

    Example:
        sudo piprov runner my-org AABBCC... deployment,development
    """
    from piprov.cli_support import get_runner, handle_cli_error, print_info, print_success
    from piprov.models.runner import RunnerRequest
    from piprov.services.runner import ActionsRunnerSetup

    try:
        request = RunnerRequest(org_name=org_name, token=token, labels=labels)
        result = ActionsRunnerSetup(request, runner=get_runner()).run()
    except (ProvisionError, ValidationError) as e:
        handle_cli_error(e, console)
        return

    print_success(console, f"Runner registered with {request.url}")
    print_info(console, f"Runner directory: {result.runner_dir}")
    if result.status:
        console.print(result.status, highlight=False)


def register_runner_commands(app: typer.Typer, shared_console: Console):
    """Register the runner command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(runner)
