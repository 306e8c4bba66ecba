"""System package manager detection and installs (apt-get, yum, pacman, apk)."""
from typing import Callable, Dict, List, Optional, Sequence

from piprov.core.apt_lock import wait_for_apt_lock
from piprov.core.command import CommandRunner
from piprov.core.errors import CommandError, PrerequisiteError
from piprov.core.host import is_root
from piprov.core.logger import get_logger

logger = get_logger(__name__)

# Detection order matters: Raspberry Pi OS ships apt-get only
SUPPORTED_MANAGERS = ["apt-get", "yum", "pacman", "apk"]

INSTALL_ARGS: Dict[str, List[str]] = {
    "apt-get": ["apt-get", "install", "-y"],
    "yum": ["yum", "install", "-y"],
    "pacman": ["pacman", "-S", "--noconfirm"],
    "apk": ["apk", "add", "--no-cache"],
}

UPDATE_ARGS: Dict[str, List[str]] = {
    "apt-get": ["apt-get", "update", "-qq"],
    "pacman": ["pacman", "-Sy"],
    "apk": ["apk", "update"],
}

# Same software under a different name per distribution
PACKAGE_ALIASES: Dict[str, Dict[str, str]] = {
    "dhcpcd": {"apt-get": "dhcpcd5"},
}


class PackageManager:
    """Thin wrapper over the host's package manager."""

    def __init__(
        self,
        name: str,
        runner: Optional[CommandRunner] = None,
        use_sudo: Optional[bool] = None,
        lock_wait: Optional[Callable[[], float]] = None,
    ):
        if name not in SUPPORTED_MANAGERS:
            raise ValueError(f"Unsupported package manager: {name}")
        self.name = name
        self.runner = runner or CommandRunner()
        self.use_sudo = (not is_root()) if use_sudo is None else use_sudo
        self.lock_wait = lock_wait or wait_for_apt_lock

    @classmethod
    def detect(cls, runner: Optional[CommandRunner] = None,
               allowed: Sequence[str] = SUPPORTED_MANAGERS, **kwargs) -> "PackageManager":
        """Pick the first available package manager.

        Raises:
            PrerequisiteError: If none of ``allowed`` is installed
        """
        runner = runner or CommandRunner()
        for name in allowed:
            if runner.which(name):
                return cls(name, runner=runner, **kwargs)
        raise PrerequisiteError(
            "Could not detect package manager "
            f"(looked for {', '.join(allowed)}). Please install the packages manually."
        )

    @property
    def is_apt(self) -> bool:
        return self.name == "apt-get"

    def package_name(self, package: str) -> str:
        return PACKAGE_ALIASES.get(package, {}).get(self.name, package)

    def _run(self, argv: List[str], check: bool = True):
        if self.is_apt and not self.runner.mock:
            self.lock_wait()
        env = {"DEBIAN_FRONTEND": "noninteractive"} if self.is_apt else None
        if self.use_sudo:
            # sudo resets the environment, so pass the variable on its command line
            argv = ["sudo"] + [f"{k}={v}" for k, v in (env or {}).items()] + argv
        return self.runner.run(argv, check=check, env=env)

    def update(self, tolerate_failure: bool = False) -> bool:
        """Refresh package lists.

        Args:
            tolerate_failure: Log a warning instead of raising when some
                repositories fail (common on old Raspbian releases)
        """
        argv = UPDATE_ARGS.get(self.name)
        if argv is None:
            return True
        logger.info("Updating package lists...")
        try:
            self._run(list(argv))
            return True
        except CommandError as e:
            if not tolerate_failure:
                raise
            logger.warning(f"Some repositories failed to update, continuing: {e.stderr or e}")
            return False

    def upgrade(self):
        if self.is_apt:
            logger.info("Upgrading installed packages...")
            self._run(["apt-get", "upgrade", "-y"])

    def install(self, *packages: str):
        names = [self.package_name(p) for p in packages]
        logger.info(f"Installing {' '.join(names)}...")
        self._run(INSTALL_ARGS[self.name] + names)

    def try_install(self, *packages: str) -> bool:
        """Install, logging a warning instead of raising on failure."""
        try:
            self.install(*packages)
            return True
        except CommandError as e:
            logger.warning(f"Failed to install {' '.join(packages)}: {e.stderr or e}")
            return False
