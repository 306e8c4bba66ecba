"""Static IP / port forwarding CLI command."""
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from piprov.core.errors import InputError, ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def static_ip(
    ip_address: str = typer.Argument(..., help="WiFi address with prefix, e.g. 192.168.0.10/24"),
    gateway: str = typer.Argument(..., help="Router address, e.g. 192.168.0.1"),
    extras: Optional[List[str]] = typer.Argument(
        None, help='Optional DNS servers ("192.168.0.1 8.8.8.8") and ports to forward ("80,443")'
    ),
    ethernet: Optional[str] = typer.Option(None, "--ethernet", "-e", help="Also give eth0 this address (IP/CIDR)"),
    strict: bool = typer.Option(False, "--strict", help="Fail when port forwarding fails"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """Configure a static IP with dhcpcd and forward ports via UPnP.

    Examples:
        sudo piprov static-ip 192.168.0.10/24 192.168.0.1
        sudo piprov static-ip 192.168.0.10/24 192.168.0.1 "192.168.0.1 8.8.8.8" "80,443,3000"
        sudo piprov static-ip 192.168.0.10/24 192.168.0.1 --ethernet 192.168.0.11/24
    """
    from piprov.cli_support import get_runner, handle_cli_error, make_confirm, print_info, print_success, print_warning
    from piprov.models.network import StaticIPRequest, classify_extra_args
    from piprov.services.dhcpcd import StaticIPSetup

    try:
        try:
            dns_servers, ports = classify_extra_args(extras or [])
        except ValueError as e:
            raise InputError(str(e))
        request = StaticIPRequest(
            wifi_ip=ip_address,
            gateway=gateway,
            dns_servers=dns_servers,
            ports=ports,
            ethernet_ip=ethernet,
        )
        runner = get_runner()
        result = StaticIPSetup(request, runner=runner, confirm=make_confirm(yes, runner.mock),
                               strict=strict).run()
    except (ProvisionError, ValidationError) as e:
        handle_cli_error(e, console)
        return

    if result.cancelled:
        print_warning(console, "Operation cancelled")
        return

    print_success(console, "DHCPCD static IP configuration completed")
    print_info(console, f"WiFi (wlan0): {request.wifi_ip}")
    if result.ethernet_configured:
        print_info(console, f"Ethernet (eth0): {request.ethernet_ip}")
    if result.forwarded_ports:
        print_info(console, f"Forwarded ports: {', '.join(str(p) for p in result.forwarded_ports)}")
    if result.failed_ports:
        print_warning(console, f"Forward manually: {', '.join(str(p) for p in result.failed_ports)}")
    if result.backup_path:
        print_info(console, f"Backup: {result.backup_path}")
    print_warning(console, "Reboot to apply the changes: sudo reboot")


def register_network_commands(app: typer.Typer, shared_console: Console):
    """Register network commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command("static-ip")(static_ip)
