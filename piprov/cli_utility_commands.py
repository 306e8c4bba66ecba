"""Utility CLI commands - doctor, version."""
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Module-level console instance (will be set by register function)
console: Console = Console()

# Tools the provisioning commands install or depend on
TOOLS = ["apt-get", "systemctl", "curl", "git", "docker", "caddy", "node", "npm", "pm2",
         "dhcpcd", "upnpc", "vcgencmd"]


def doctor():
    """Show what piprov can see about this host.

    Reports OS, board, architecture, libstdc++ GLIBCXX level and which
    provisioning tools are already installed.
    """
    from piprov.core.host import detect_board, hostname, is_root, machine, read_os_release
    from piprov.core.versions import NodeCompatTable, select_node_version
    from piprov.services.node import LibstdcxxProbe
    from piprov.cli_support import get_runner

    console.print("\n[bold cyan]🔍 Host Detection[/bold cyan]\n")

    os_release = read_os_release()
    kind, description = detect_board()
    console.print(Panel(
        f"[bold]Hostname:[/bold] {hostname()}\n"
        f"[bold]OS:[/bold] {os_release.get('PRETTY_NAME', 'unknown')}\n"
        f"[bold]Architecture:[/bold] {machine()}\n"
        f"[bold]Board:[/bold] {description} ({kind.value})\n"
        f"[bold]Root:[/bold] {'yes' if is_root() else 'no'}",
        title="🖥  System",
        border_style="blue"
    ))

    glibcxx = LibstdcxxProbe().detect()
    selection = select_node_version(glibcxx, NodeCompatTable.load())
    node_line = selection.version or "none (build from source)"
    console.print(Panel(
        f"[bold]GLIBCXX:[/bold] {glibcxx or 'unknown'}\n"
        f"[bold]Preferred Node.js:[/bold] {selection.target}\n"
        f"[bold]Installable Node.js:[/bold] {node_line} ({selection.reason.value})",
        title="📦 Node.js compatibility",
        border_style="green"
    ))

    runner = get_runner(mock=False)
    table = Table(title="🔧 Tools", show_header=True)
    table.add_column("Tool", style="cyan")
    table.add_column("Installed")
    for tool in TOOLS:
        table.add_row(tool, "[green]yes[/green]" if runner.which(tool) else "[dim]no[/dim]")
    console.print(table)
    console.print()


def version():
    """Show piprov version."""
    from piprov import __version__
    console.print(f"piprov v{__version__}")


def register_utility_commands(app: typer.Typer, shared_console: Console):
    """Register utility commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(doctor)
    app.command()(version)
