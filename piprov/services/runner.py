"""Self-hosted GitHub Actions runner registration."""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from piprov.core.command import CommandRunner
from piprov.core.download import download_file
from piprov.core.errors import CommandError, InputError, ProvisionError
from piprov.core.host import machine, require_root, user_exists
from piprov.core.logger import get_logger
from piprov.models.runner import RunnerRequest

logger = get_logger(__name__)

RUNNER_USER = "github"
RUNNER_VERSION = "2.321.0"
RUNNER_DOWNLOAD_URL = "https://github.com/actions/runner/releases/download/v{version}/{archive}"

ARCH_MAP = {
    "x86_64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armhf": "arm",
}


def runner_arch(machine_name: str) -> str:
    """Map ``uname -m`` output to the runner release architecture.

    Raises:
        InputError: For an architecture GitHub does not ship a runner for
    """
    try:
        return ARCH_MAP[machine_name]
    except KeyError:
        raise InputError(f"Unsupported architecture: {machine_name}")


def runner_archive(arch: str, version: str = RUNNER_VERSION) -> str:
    return f"actions-runner-linux-{arch}-{version}.tar.gz"


@dataclass
class RunnerResult:
    runner_dir: Path
    arch: str
    user_created: bool = False
    downloaded: bool = False
    extracted: bool = False
    status: str = ""


class ActionsRunnerSetup:
    """Creates the runner account, unpacks the runner, registers it and installs the service."""

    def __init__(
        self,
        request: RunnerRequest,
        runner: Optional[CommandRunner] = None,
        user: str = RUNNER_USER,
        version: str = RUNNER_VERSION,
        home: Optional[Path] = None,
        machine_name: Optional[str] = None,
    ):
        self.request = request
        self.runner = runner or CommandRunner()
        self.user = user
        self.version = version
        self.home = Path(home) if home else Path("/home") / user
        self.runner_dir = self.home / "actions-runner"
        self.machine_name = machine_name or machine()
        self.arch = runner_arch(self.machine_name)
        self.archive = runner_archive(self.arch, version)

    def run(self) -> RunnerResult:
        require_root("GitHub Actions runner setup")
        logger.info(f"Organization: {self.request.org_name}")
        logger.info(f"Labels: {self.request.labels_arg}")
        logger.info(f"Architecture: {self.machine_name} (using {self.arch} runner)")

        result = RunnerResult(self.runner_dir, self.arch)
        result.user_created = self.ensure_user()
        result.downloaded, result.extracted = self.unpack()
        self.configure()
        result.status = self.install_service()
        logger.info("✓ GitHub Actions runner setup completed")
        return result

    def ensure_user(self) -> bool:
        if user_exists(self.user):
            logger.info(f"User {self.user} already exists")
            return False
        logger.info(f"Creating runner user: {self.user}")
        try:
            self.runner.run(["adduser", "--disabled-password", "--gecos", "", self.user])
            self.runner.run(["passwd", "-l", self.user])
        except CommandError as e:
            raise ProvisionError(f"Failed to create user {self.user}: {e}")
        logger.info(f"✓ User {self.user} created")
        return True

    def unpack(self):
        """Download and extract the runner unless already done.

        Returns:
            Tuple of (downloaded, extracted)
        """
        logger.info(f"Setting up runner in {self.runner_dir}")
        archive_path = self.runner_dir / self.archive
        downloaded = extracted = False

        if self.runner.mock:
            logger.info(f"MOCK: Would download {self.archive} into {self.runner_dir}")
        else:
            self.runner_dir.mkdir(parents=True, exist_ok=True)
            if not archive_path.exists():
                url = RUNNER_DOWNLOAD_URL.format(version=self.version, archive=self.archive)
                download_file(url, archive_path)
                downloaded = True
            else:
                logger.info(f"Runner archive {self.archive} already present")

        if (self.runner_dir / "config.sh").exists():
            logger.info("Runner already extracted")
        else:
            self.runner.run(["tar", "xzf", self.archive], cwd=str(self.runner_dir))
            extracted = True

        self.runner.run(["chown", "-R", f"{self.user}:{self.user}", str(self.runner_dir)])
        return downloaded, extracted

    def configure(self):
        logger.info(f"Registering runner with {self.request.url}...")
        argv = [
            "./config.sh",
            "--url", self.request.url,
            "--token", self.request.token,
            "--labels", self.request.labels_arg,
            "--unattended",
        ]
        try:
            self.runner.run(argv, cwd=str(self.runner_dir), user=self.user,
                            redact=[self.request.token])
        except CommandError as e:
            raise ProvisionError(f"Failed to set up runner as user {self.user}: {e}")
        logger.info("✓ Runner registered")

    def install_service(self) -> str:
        logger.info("Installing runner service...")
        try:
            self.runner.run(["./svc.sh", "install", self.user], cwd=str(self.runner_dir))
        except CommandError as e:
            raise ProvisionError(f"Failed to install runner service: {e}")
        logger.info("Starting runner service...")
        try:
            self.runner.run(["./svc.sh", "start"], cwd=str(self.runner_dir))
        except CommandError as e:
            raise ProvisionError(f"Failed to start runner service: {e}")
        status = self.runner.run(["./svc.sh", "status"], cwd=str(self.runner_dir), check=False)
        return status.output.strip()
