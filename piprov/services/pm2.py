"""PM2 process manager setup for a Node.js project."""
import json
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from piprov.core.command import CommandRunner
from piprov.core.errors import CommandError, InputError, PrerequisiteError, VerificationError
from piprov.core.host import is_root, invoking_user
from piprov.core.logger import get_logger

logger = get_logger(__name__)

ECOSYSTEM_FILE = "ecosystem.config.js"
MONIT_MODULE = "pm2-server-monit"
MONIT_SETTINGS = [
    ("cpu", "true"),
    ("memory", "true"),
    ("network", "true"),
    ("disk", "false"),
    ("interval", "20"),
]

STARTUP_LINE_RE = re.compile(r"^\s*(sudo\s.*pm2.*)$", re.MULTILINE)


def parse_process_names(jlist_output: str) -> List[str]:
    """Names from ``pm2 jlist`` output (banner lines before the JSON are ignored)."""
    start = jlist_output.find("[")
    if start < 0:
        return []
    try:
        processes = json.loads(jlist_output[start:])
    except ValueError:
        return []
    return [p.get("name", "") for p in processes if isinstance(p, dict)]


def extract_startup_command(output: str) -> Optional[str]:
    """The ``sudo ... pm2 startup ...`` line that ``pm2 startup`` asks you to run."""
    match = STARTUP_LINE_RE.search(output)
    return match.group(1).strip() if match else None


@dataclass
class Pm2Result:
    app_name: str
    user: Optional[str]
    pm2_version: str = ""
    startup_installed: bool = False
    saved: bool = False
    monitoring: bool = False
    warnings: List[str] = field(default_factory=list)


class Pm2Setup:
    """Starts a project under PM2 and makes it survive reboots."""

    def __init__(
        self,
        project_path: Path,
        app_name: Optional[str] = None,
        runner: Optional[CommandRunner] = None,
        strict: bool = False,
    ):
        self.project_path = Path(project_path)
        self.app_name = app_name or self.project_path.resolve().name
        self.runner = runner or CommandRunner()
        self.strict = strict
        self.user = invoking_user(str(self.project_path))
        # Only switch users when root is acting for someone else
        self.run_as = self.user if is_root() and self.user and self.user != "root" else None

    def _pm2(self, *args: str, check: bool = True, cwd: Optional[Path] = None):
        return self.runner.run(["pm2", *args], check=check, user=self.run_as,
                               cwd=str(cwd) if cwd else None)

    def validate_project(self):
        if not self.project_path.is_dir():
            raise InputError(f"Project path does not exist: {self.project_path}")
        if not (self.project_path / ECOSYSTEM_FILE).is_file():
            raise PrerequisiteError(
                f"{ECOSYSTEM_FILE} not found in project directory: {self.project_path}"
            )

    def run(self) -> Pm2Result:
        if not self.project_path.is_dir():
            raise InputError(f"Project path does not exist: {self.project_path}")
        logger.info(f"Starting PM2 setup for project at: {self.project_path}")
        if self.run_as:
            logger.info(f"Running as root. Commands run as user: {self.run_as}")
        elif is_root() and not self.user:
            logger.warning("Running as root but cannot determine the original user")

        result = Pm2Result(self.app_name, self.user)
        result.pm2_version = self.ensure_pm2()

        self.create_logs_dir()
        self.validate_project()

        self.replace_existing_process()
        self.start()
        result.startup_installed = self.install_startup(result.warnings)
        result.saved = self.save(result.warnings)
        result.monitoring = self.configure_monitoring(result.warnings)
        logger.info(f"✓ {self.app_name} is running with PM2")
        return result

    def ensure_pm2(self) -> str:
        if self.runner.which("pm2", user=self.run_as):
            version = self._pm2("--version", check=False).stdout.strip()
            logger.info(f"✓ PM2 is already installed: v{version}")
            return version

        logger.info("PM2 is not installed. Installing PM2 globally...")
        if not self.runner.which("npm", user=self.run_as):
            who = self.user or "the current user"
            raise PrerequisiteError(
                f"npm is not installed for {who}. Please install Node.js and npm first (piprov node)."
            )
        try:
            self.runner.run(["npm", "install", "-g", "pm2"], user=self.run_as)
        except CommandError as e:
            raise PrerequisiteError(f"Failed to install PM2. Make sure you have proper permissions.\n{e}")
        version = self._pm2("--version", check=False).stdout.strip()
        logger.info(f"✓ PM2 installed successfully: v{version}")
        return version

    def create_logs_dir(self):
        logs = self.project_path / "logs"
        if self.run_as:
            self.runner.run(["mkdir", "-p", str(logs)], user=self.run_as)
        elif self.runner.mock:
            logger.info(f"MOCK: Would create {logs}")
        else:
            logs.mkdir(parents=True, exist_ok=True)
        logger.info(f"✓ Logs directory created/verified: {logs}")

    def replace_existing_process(self):
        listing = self._pm2("jlist", check=False)
        if self.app_name not in parse_process_names(listing.stdout):
            return
        logger.warning(f"Found existing '{self.app_name}' process. Stopping it...")
        self._pm2("stop", self.app_name, check=False)
        self._pm2("delete", self.app_name, check=False)

    def start(self):
        logger.info("Starting application with PM2...")
        try:
            self._pm2("start", ECOSYSTEM_FILE, "--env", "production", cwd=self.project_path)
        except CommandError as e:
            raise VerificationError(
                f"Failed to start application with PM2. Check {ECOSYSTEM_FILE} configuration.\n{e}"
            )
        logger.info("✓ Application started with PM2")

    def install_startup(self, warnings: List[str]) -> bool:
        logger.info("Setting up PM2 to start on system reboot...")
        output = self._pm2("startup", check=False).output
        command = extract_startup_command(output)
        if not command:
            if self.runner.mock:
                return True
            message = "Could not generate PM2 startup command. Run 'pm2 startup' manually and execute the command it shows"
            logger.warning(message)
            warnings.append(message)
            return False

        try:
            self.runner.run(shlex.split(command))
        except CommandError:
            message = f"Failed to execute PM2 startup command. Run it manually:\n  {command}"
            logger.warning(message)
            warnings.append(message)
            return False
        logger.info("✓ PM2 startup script installed")
        return True

    def save(self, warnings: List[str]) -> bool:
        if self._pm2("save", check=False).ok:
            logger.info("✓ PM2 process list saved")
            return True
        warnings.append("Failed to save PM2 process list")
        logger.warning(warnings[-1])
        return False

    def configure_monitoring(self, warnings: List[str]) -> bool:
        """Install pm2-server-monit and apply its settings.

        Raises:
            VerificationError: In strict mode, if the module cannot be set up
        """
        logger.info("Installing PM2 server monitoring module...")
        failed = []
        if not self._pm2("install", MONIT_MODULE, check=False).ok:
            failed.append(f"pm2 install {MONIT_MODULE}")
        else:
            for key, value in MONIT_SETTINGS:
                if not self._pm2("set", f"{MONIT_MODULE}:{key}", value, check=False).ok:
                    failed.append(f"pm2 set {MONIT_MODULE}:{key} {value}")

        if failed:
            message = f"PM2 server monitoring setup failed: {', '.join(failed)}"
            if self.strict:
                raise VerificationError(message)
            logger.warning(message)
            warnings.append(message)
            return False
        logger.info("✓ PM2 server monitoring configured")
        return True
