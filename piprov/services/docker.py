"""Docker Engine and Compose plugin installation for Ubuntu."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from piprov.core.command import CommandRunner
from piprov.core.download import fetch_text
from piprov.core.errors import CommandError, InputError
from piprov.core.host import current_user, is_root, read_os_release, user_exists
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager

logger = get_logger(__name__)

DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_REPO_URL = "https://download.docker.com/linux/ubuntu"
DOCKER_KEYRING = Path("/etc/apt/keyrings/docker.gpg")
DOCKER_SOURCES_LIST = Path("/etc/apt/sources.list.d/docker.list")

SUPPORTED_RELEASE = "22.04"

PREREQUISITES = [
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "software-properties-common",
    "gnupg",
    "lsb-release",
]

DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]


def is_supported_release(os_release: Dict[str, str]) -> bool:
    return os_release.get("ID") == "ubuntu" and os_release.get("VERSION_ID") == SUPPORTED_RELEASE


def repository_line(arch: str, codename: str, keyring: Path = DOCKER_KEYRING) -> str:
    return f"deb [arch={arch} signed-by={keyring}] {DOCKER_REPO_URL} {codename} stable\n"


def resolve_group_members(users: Sequence[str], as_root: bool, fallback_user: Optional[str]) -> List[str]:
    """Pick who joins the docker group.

    Raises:
        InputError: Running as root without any username
    """
    if users:
        return list(users)
    if as_root:
        raise InputError(
            "When running as root, you must specify at least one username.\n"
            "Example: piprov docker alice bob github"
        )
    return [fallback_user] if fallback_user else []


@dataclass
class GroupReport:
    added: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class DockerResult:
    installed: bool = False
    docker_version: str = ""
    compose_version: str = ""
    group: GroupReport = field(default_factory=GroupReport)
    cancelled: bool = False


class DockerSetup:
    """Installs Docker from download.docker.com and manages the docker group."""

    def __init__(
        self,
        users: Sequence[str] = (),
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        confirm: Optional[Callable[..., bool]] = None,
        os_release_path: Optional[Path] = None,
        keyring: Path = DOCKER_KEYRING,
        sources_list: Path = DOCKER_SOURCES_LIST,
    ):
        self.users = list(users)
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.confirm = confirm or (lambda message, default=False: default)
        self.os_release_path = os_release_path
        self.keyring = Path(keyring)
        self.sources_list = Path(sources_list)
        self.as_root = is_root()

    def _sudo(self, argv: List[str]) -> List[str]:
        return argv if self.as_root else ["sudo"] + argv

    def _package_manager(self) -> PackageManager:
        if self.packages is None:
            self.packages = PackageManager.detect(self.runner, allowed=["apt-get"])
        return self.packages

    def run(self) -> DockerResult:
        # Fail fast on a missing username before installing anything
        members = resolve_group_members(self.users, self.as_root, self._fallback_user())

        if self.as_root:
            logger.warning(
                "Running as root. It's recommended to run as a regular user with sudo privileges."
            )
            if not self.confirm("Do you want to continue?"):
                return DockerResult(cancelled=True)

        os_release = read_os_release(self.os_release_path) if self.os_release_path else read_os_release()
        if not is_supported_release(os_release):
            detected = os_release.get("PRETTY_NAME", "unknown")
            logger.warning(f"Designed for Ubuntu {SUPPORTED_RELEASE} LTS. Detected OS: {detected}")
            if not self.confirm("Do you want to continue anyway?"):
                return DockerResult(cancelled=True)

        result = DockerResult()
        skip_install = False
        if self.runner.which("docker"):
            version = self.runner.run(["docker", "--version"], check=False).stdout.strip()
            logger.warning(f"Docker is already installed: {version}")
            if not self.confirm("Do you want to continue and potentially reinstall/update?"):
                logger.info("Skipping Docker installation. Will only manage docker group membership.")
                skip_install = True

        if not skip_install:
            self.install(os_release)
            result.installed = True
            result.docker_version, result.compose_version = self.verify()

        result.group = self.add_users_to_group(members)
        return result

    def _fallback_user(self) -> Optional[str]:
        if self.as_root:
            return None
        return current_user()

    def install(self, os_release: Dict[str, str]):
        packages = self._package_manager()
        packages.update()
        packages.upgrade()
        logger.info("✓ System updated")

        packages.install(*PREREQUISITES)

        logger.info("Adding Docker's official GPG key...")
        self.add_gpg_key()
        logger.info("Adding Docker repository...")
        self.add_repository(os_release.get("VERSION_CODENAME"))
        packages.update()

        packages.install(*DOCKER_PACKAGES)
        logger.info("✓ Docker installed")

        self.runner.run(self._sudo(["systemctl", "start", "docker"]))
        self.runner.run(self._sudo(["systemctl", "enable", "docker"]))
        logger.info("✓ Docker service started and enabled")

    def add_gpg_key(self):
        self.runner.run(self._sudo(["mkdir", "-p", str(self.keyring.parent)]))
        armored = "" if self.runner.mock else fetch_text(DOCKER_GPG_URL)
        self.runner.run(
            self._sudo(["gpg", "--batch", "--yes", "--dearmor", "-o", str(self.keyring)]),
            input_text=armored,
        )
        self.runner.run(self._sudo(["chmod", "a+r", str(self.keyring)]))

    def add_repository(self, codename: Optional[str]):
        arch = self.runner.run(["dpkg", "--print-architecture"]).stdout.strip()
        if not codename:
            codename = self.runner.run(["lsb_release", "-cs"]).stdout.strip()
        line = repository_line(arch, codename, self.keyring)
        self.runner.run(self._sudo(["tee", str(self.sources_list)]), input_text=line)

    def verify(self):
        """Check the docker and compose CLIs; hello-world only as a regular user."""
        logger.info("Verifying Docker installation...")
        docker_version = self.runner.run(["docker", "--version"]).stdout.strip()
        logger.info(f"✓ Docker version: {docker_version}")
        compose_version = self.runner.run(["docker", "compose", "version"]).stdout.strip()
        logger.info(f"✓ Docker Compose version: {compose_version}")

        if self.as_root:
            logger.info("Skipping Docker test (running as root)")
        else:
            logger.info("Testing Docker with hello-world container...")
            test = self.runner.run(self._sudo(["docker", "run", "--rm", "hello-world"]), check=False)
            if test.ok:
                logger.info("✓ Docker test completed successfully")
            else:
                logger.warning("Docker test failed, but installation appears complete")
        return docker_version, compose_version

    def add_users_to_group(self, users: Sequence[str]) -> GroupReport:
        report = GroupReport()
        if not users:
            return report

        logger.info("Adding users to docker group...")
        for username in users:
            if not user_exists(username):
                logger.warning(f"User '{username}' does not exist on this system, skipping...")
                report.failed.append(username)
                continue
            try:
                self.runner.run(self._sudo(["usermod", "-aG", "docker", username]))
                report.added.append(username)
                logger.info(f"✓ User '{username}' added to docker group")
            except CommandError as e:
                logger.error(f"Failed to add user '{username}' to docker group: {e.stderr or e}")
                report.failed.append(username)

        if report.added:
            logger.warning(
                "Added users need to log out and back in (or restart) for group changes to take effect"
            )
        if report.failed:
            logger.warning(f"Failed to add {len(report.failed)} user(s): {', '.join(report.failed)}")
        return report
