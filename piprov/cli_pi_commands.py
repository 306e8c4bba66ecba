"""Raspberry Pi hardware CLI commands."""
import typer
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def hdmi(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """Disable HDMI output now and on every boot (saves power on headless Pis)."""
    from piprov.cli_support import get_runner, handle_cli_error, make_confirm, print_info, print_success, print_warning
    from piprov.services.hdmi import HdmiDisabler

    try:
        runner = get_runner()
        result = HdmiDisabler(runner=runner, confirm=make_confirm(yes, runner.mock)).run()
    except ProvisionError as e:
        handle_cli_error(e, console)
        return

    if result.cancelled:
        print_warning(console, "Operation cancelled")
        return

    print_success(console, "HDMI disable configuration completed")
    if result.immediate:
        print_success(console, "HDMI output has been disabled immediately")
    print_info(console, f"Configuration file: {result.config_path}")
    if result.backup_path:
        print_info(console, f"Backup: {result.backup_path}")
    print_info(console, "To re-enable HDMI, remove the hdmi_* lines and reboot")


def register_pi_commands(app: typer.Typer, shared_console: Console):
    """Register Raspberry Pi commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(hdmi)
