"""Waiting for the apt/dpkg lock before running package commands.

unattended-upgrades and apt-daily often hold the dpkg lock right after a Pi
boots. Package steps poll until the lock is free instead of failing.
"""
import fcntl
import time
from pathlib import Path
from typing import List, Optional, Sequence

from piprov.core.command import CommandRunner
from piprov.core.config import get_config
from piprov.core.errors import AptLockTimeout
from piprov.core.logger import get_logger

logger = get_logger(__name__)

APT_LOCK_FILES = [
    Path("/var/lib/dpkg/lock-frontend"),
    Path("/var/lib/dpkg/lock"),
    Path("/var/lib/apt/lists/lock"),
    Path("/var/cache/apt/archives/lock"),
]


class AptLockProbe:
    """Reports which apt/dpkg lock files another process currently holds."""

    def __init__(self, lock_files: Optional[Sequence[Path]] = None,
                 runner: Optional[CommandRunner] = None):
        self.lock_files = [Path(p) for p in (lock_files or APT_LOCK_FILES)]
        self.runner = runner or CommandRunner()

    def holders(self) -> List[Path]:
        """Return the lock files that are held right now."""
        held = []
        for lock_file in self.lock_files:
            if not lock_file.exists():
                continue
            if self._is_held(lock_file):
                held.append(lock_file)
        return held

    def is_locked(self) -> bool:
        return bool(self.holders())

    def _is_held(self, lock_file: Path) -> bool:
        # dpkg takes fcntl record locks, so probe with lockf rather than flock
        try:
            with open(lock_file, "r") as f:
                try:
                    fcntl.lockf(f.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                except OSError:
                    return True
                fcntl.lockf(f.fileno(), fcntl.LOCK_UN)
                return False
        except PermissionError:
            return self._fuser_reports_holder(lock_file)

    def _fuser_reports_holder(self, lock_file: Path) -> bool:
        if not self.runner.which("fuser"):
            logger.debug(f"Cannot inspect {lock_file} (no permission, no fuser)")
            return False
        result = self.runner.run(["fuser", str(lock_file)], check=False)
        return result.ok and bool(result.stdout.strip())


def wait_for_apt_lock(
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    probe: Optional[AptLockProbe] = None,
) -> float:
    """Block until no apt/dpkg lock is held.

    Args:
        timeout: Maximum seconds to wait (default from config)
        interval: Seconds between checks (default from config)
        probe: Lock probe to use (default: standard apt/dpkg lock files)

    Returns:
        Seconds spent waiting

    Raises:
        AptLockTimeout: If the lock is still held after ``timeout`` seconds
    """
    config = get_config()
    timeout = config.apt_lock_timeout if timeout is None else timeout
    interval = config.apt_lock_poll_interval if interval is None else interval
    probe = probe or AptLockProbe()

    start = time.monotonic()
    announced = False
    while True:
        held = probe.holders()
        waited = time.monotonic() - start
        if not held:
            if announced:
                logger.info(f"apt lock released after {waited:.0f}s")
            return waited

        if waited >= timeout:
            raise AptLockTimeout(
                f"Timeout waiting for apt lock after {timeout}s.\n"
                f"Still held: {', '.join(str(p) for p in held)}\n"
                f"Another package manager (often unattended-upgrades) is running; "
                f"try again once it finishes."
            )

        if not announced:
            logger.warning(f"Waiting for another apt/dpkg process to release {held[0]}...")
            announced = True
        time.sleep(interval)
