"""systemctl wrapper for enabling, restarting and checking services."""
import time
from typing import Optional

from piprov.core.command import CommandRunner
from piprov.core.config import get_config
from piprov.core.errors import CommandError, VerificationError
from piprov.core.logger import get_logger

logger = get_logger(__name__)


class SystemdService:
    """One systemd unit on the host."""

    def __init__(self, name: str, runner: Optional[CommandRunner] = None):
        self.name = name
        self.runner = runner or CommandRunner()

    def _systemctl(self, *args: str, check: bool = True):
        return self.runner.run(["systemctl", *args, self.name], check=check)

    def enable(self):
        logger.info(f"Enabling {self.name} to start on boot...")
        self._systemctl("enable")

    def start(self):
        logger.info(f"Starting {self.name}...")
        self._systemctl("start")

    def restart(self):
        logger.info(f"Restarting {self.name}...")
        self._systemctl("restart")

    def is_active(self) -> bool:
        return self._systemctl("is-active", "--quiet", check=False).ok

    def status_text(self) -> str:
        result = self.runner.run(
            ["systemctl", "status", self.name, "--no-pager", "-l"], check=False
        )
        return result.stdout

    def restart_and_verify(self, wait: Optional[float] = None):
        """Enable, restart, wait, and require the unit to be active.

        Raises:
            VerificationError: If the unit is not active afterwards
        """
        try:
            self.enable()
        except CommandError as e:
            raise VerificationError(f"Failed to enable {self.name} service: {e}")
        try:
            self.restart()
        except CommandError as e:
            raise VerificationError(f"Failed to start {self.name} service: {e}")

        if not self.runner.mock:
            time.sleep(get_config().service_start_wait if wait is None else wait)

        if not self.is_active():
            raise VerificationError(
                f"{self.name} service failed to start. Check logs with: journalctl -u {self.name}"
            )
        logger.info(f"✓ {self.name} service is running")
