"""Git and GitHub SSH key CLI command."""
import typer
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def git(
    key_name: str = typer.Option("github_bot", "--key-name", "-k", help="Key file name under ~/.ssh"),
):
    """Install git and create an SSH key for GitHub.

    Prints the public key to add under GitHub > Settings > SSH and GPG keys.
    """
    from piprov.cli_support import get_runner, handle_cli_error, print_info, print_success
    from piprov.services.git_ssh import GitSetup

    try:
        result = GitSetup(key_name, runner=get_runner()).run()
    except ProvisionError as e:
        handle_cli_error(e, console)
        return

    print_success(console, "Git setup completed")
    print_info(console, result.git_version)
    print_info(console, f"SSH key: {result.key_path}")
    if result.public_key:
        console.print("\n[bold]Public key[/bold] (add it to GitHub):\n")
        console.print(result.public_key, soft_wrap=True, highlight=False)
        console.print()
    print_info(console, "Test the connection with: ssh -T git@github.com")


def register_git_commands(app: typer.Typer, shared_console: Console):
    """Register the git command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(git)
