"""Router port forwarding through UPnP (miniupnpc's ``upnpc``)."""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from piprov.core.command import CommandRunner
from piprov.core.errors import CommandError, PrerequisiteError, VerificationError
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager

logger = get_logger(__name__)


@dataclass
class ForwardReport:
    forwarded: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def manual_instructions(ports: Sequence[int], local_ip: str, gateway: str) -> str:
    """Router instructions shown when UPnP cannot do the job."""
    lines = [
        "Since automatic port forwarding failed, configure it manually on your router:",
        "",
        f"1. Access your router's web interface (usually at {gateway})",
        "2. Navigate to Port Forwarding / Virtual Server / NAT settings",
        "3. Add the following port forwarding rules:",
        "",
    ]
    for port in ports:
        lines.extend([
            f"   - External Port: {port}",
            f"     Internal IP: {local_ip}",
            f"     Internal Port: {port}",
            "     Protocol: TCP (and UDP if needed)",
            "",
        ])
    lines.append("4. Save the configuration and restart your router if needed")
    return "\n".join(lines)


class PortForwarder:
    """Adds permanent TCP mappings on the router with ``upnpc -a``."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        strict: bool = False,
    ):
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.strict = strict

    def ensure_client(self) -> bool:
        """Make sure ``upnpc`` exists, installing miniupnpc if needed."""
        if self.runner.which("upnpc"):
            return True
        logger.warning("UPnP client (upnpc) not found. Installing miniupnpc...")
        try:
            packages = self.packages or PackageManager.detect(self.runner, allowed=["apt-get", "yum"])
        except PrerequisiteError as e:
            logger.warning(str(e))
            return False
        return packages.try_install("miniupnpc")

    def forward(self, local_ip: str, ports: Sequence[int], gateway: str) -> ForwardReport:
        """Forward each port to ``local_ip``.

        Failures are logged with manual router instructions.

        Raises:
            VerificationError: In strict mode, if any port could not be forwarded
        """
        report = ForwardReport()
        if not ports:
            return report

        logger.info(f"Configuring port forwarding for ports: {', '.join(str(p) for p in ports)}")
        if not self.ensure_client():
            report.failed = list(ports)
        else:
            for port in ports:
                logger.info(f"Forwarding port {port} to {local_ip}:{port}...")
                try:
                    # 0 lease duration = permanent mapping
                    self.runner.run(["upnpc", "-a", local_ip, str(port), str(port), "TCP", "0"])
                    report.forwarded.append(port)
                    logger.info(f"✓ Port {port} forwarded")
                except CommandError:
                    logger.warning(
                        f"Failed to forward port {port} via UPnP (router without UPnP, "
                        f"UPnP disabled, or port already forwarded)"
                    )
                    report.failed.append(port)

        if report.forwarded:
            logger.info(f"✓ Successfully forwarded {len(report.forwarded)} port(s)")
        if report.failed:
            logger.warning(f"Failed to forward {len(report.failed)} port(s) via UPnP")
            logger.warning(manual_instructions(report.failed, local_ip, gateway))
            if self.strict:
                raise VerificationError(
                    f"Port forwarding failed for: {', '.join(str(p) for p in report.failed)}"
                )
        return report
