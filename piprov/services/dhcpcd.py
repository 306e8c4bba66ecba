"""Static IP configuration through /etc/dhcpcd.conf."""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from piprov.core.command import CommandRunner
from piprov.core.file_edit import append_block, edit_file
from piprov.core.host import require_root
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager
from piprov.core.templating import render
from piprov.models.network import StaticIPRequest
from piprov.services.upnp import PortForwarder

logger = get_logger(__name__)

DHCPCD_CONF = Path("/etc/dhcpcd.conf")
WIFI_INTERFACE = "wlan0"
ETHERNET_INTERFACE = "eth0"

MARKER_PREFIX = "# Static IP configuration for"

INTERFACE_BLOCK_TEMPLATE = """\
{{ marker }} {{ iface }} - Added by piprov
interface {{ iface }}
static ip_address={{ ip }}
static routers={{ gateway }}
static domain_name_servers={{ dns | join(' ') }}
"""


def interface_block(iface: str, ip: str, gateway: str, dns: List[str]) -> str:
    return render(INTERFACE_BLOCK_TEMPLATE, marker=MARKER_PREFIX, iface=iface, ip=ip,
                  gateway=gateway, dns=dns)


def remove_interface_blocks(text: str, iface: str) -> str:
    """Drop every ``interface <iface>`` block and its marker comment.

    A block runs from the ``interface`` line up to the next blank line or the
    next ``interface`` line. Other interfaces are left untouched.
    """
    marker = re.compile(rf"^{re.escape(MARKER_PREFIX)} {re.escape(iface)}\b")
    kept: List[str] = []
    in_block = False
    for line in text.splitlines():
        stripped = line.strip()
        if in_block:
            if not stripped or stripped.startswith("interface "):
                in_block = False
            else:
                continue
        if marker.match(stripped):
            continue
        if stripped == f"interface {iface}":
            in_block = True
            continue
        kept.append(line)

    # Collapse the blank runs left behind by removed blocks
    collapsed: List[str] = []
    for line in kept:
        if not line.strip() and collapsed and not collapsed[-1].strip():
            continue
        collapsed.append(line)
    while collapsed and not collapsed[-1].strip():
        collapsed.pop()
    return "\n".join(collapsed) + ("\n" if collapsed else "")


def configure_interfaces(text: str, request: StaticIPRequest, include_ethernet: bool) -> str:
    """Return dhcpcd.conf text with fresh static blocks for wlan0 (and eth0)."""
    text = remove_interface_blocks(text, WIFI_INTERFACE)
    text = append_block(text, interface_block(
        WIFI_INTERFACE, request.wifi_ip, request.gateway, request.dns_servers))
    if include_ethernet:
        text = remove_interface_blocks(text, ETHERNET_INTERFACE)
        text = append_block(text, interface_block(
            ETHERNET_INTERFACE, request.ethernet_ip, request.gateway, request.dns_servers))
    return text


def required_markers(request: StaticIPRequest, include_ethernet: bool) -> List[str]:
    markers = [f"interface {WIFI_INTERFACE}", f"static ip_address={request.wifi_ip}"]
    if include_ethernet:
        markers.append(f"interface {ETHERNET_INTERFACE}")
    return markers


@dataclass
class StaticIPResult:
    conf_path: Path
    backup_path: Optional[Path] = None
    ethernet_configured: bool = False
    forwarded_ports: List[int] = field(default_factory=list)
    failed_ports: List[int] = field(default_factory=list)
    cancelled: bool = False


class StaticIPSetup:
    """Writes static addresses into dhcpcd.conf."""

    def __init__(
        self,
        request: StaticIPRequest,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        confirm: Optional[Callable[..., bool]] = None,
        conf_path: Path = DHCPCD_CONF,
        strict: bool = False,
    ):
        self.request = request
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.confirm = confirm or (lambda message, default=False: default)
        self.conf_path = Path(conf_path)
        self.strict = strict

    def _package_manager(self) -> PackageManager:
        if self.packages is None:
            self.packages = PackageManager.detect(self.runner, allowed=["apt-get", "yum"])
        return self.packages

    def interface_exists(self, iface: str) -> bool:
        return self.runner.run(["ip", "link", "show", iface], check=False).ok

    def ensure_dhcpcd(self):
        if self.runner.which("dhcpcd"):
            return
        logger.warning("dhcpcd not found. Installing...")
        self._package_manager().install("dhcpcd")
        logger.info("✓ dhcpcd installed")

    def run(self) -> StaticIPResult:
        require_root("Static IP configuration")
        request = self.request
        logger.info(f"WiFi IP: {request.wifi_ip}, gateway: {request.gateway}, "
                    f"DNS: {' '.join(request.dns_servers)}")
        if request.ethernet_enabled:
            logger.info(f"Ethernet IP: {request.ethernet_ip}")

        self.ensure_dhcpcd()

        if not self.interface_exists(WIFI_INTERFACE):
            logger.warning(f"{WIFI_INTERFACE} interface not found. "
                           "It may not be available yet or WiFi is not configured.")
            if not self.confirm("Do you want to continue anyway?"):
                return StaticIPResult(self.conf_path, cancelled=True)

        include_ethernet = request.ethernet_enabled
        if include_ethernet and not self.interface_exists(ETHERNET_INTERFACE):
            logger.warning(f"{ETHERNET_INTERFACE} interface not found. "
                           "Ethernet configuration will be skipped.")
            include_ethernet = False

        result = self.write_config(include_ethernet)

        if request.ports:
            forwarder = PortForwarder(self.runner, packages=self.packages, strict=self.strict)
            report = forwarder.forward(request.wifi_address, request.ports, request.gateway)
            result.forwarded_ports = report.forwarded
            result.failed_ports = report.failed

        logger.warning("A system reboot is required for the changes to take effect (sudo reboot)")
        return result

    def write_config(self, include_ethernet: bool) -> StaticIPResult:
        logger.info(f"Configuring {self.conf_path}...")
        edit = edit_file(
            self.conf_path,
            lambda text: configure_interfaces(text, self.request, include_ethernet),
            markers=required_markers(self.request, include_ethernet),
            mock=self.runner.mock,
        )
        edit.raise_for_outcome("dhcpcd configuration")
        logger.info("✓ Configuration verified")
        return StaticIPResult(self.conf_path, backup_path=edit.backup_path,
                              ethernet_configured=include_ethernet)
