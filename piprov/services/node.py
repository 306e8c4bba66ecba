"""Node.js installation through nvm with a libstdc++ (GLIBCXX) fallback chain.

Prebuilt Node.js binaries need a minimum GLIBCXX symbol version from
libstdc++.so.6. Older Raspberry Pi OS releases ship an older library, so the
install goes: detect GLIBCXX -> try upgrading libstdc++6 -> offer an older
LTS release -> build from source as the last resort.
"""
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from piprov.core.command import CmdResult, CommandRunner, format_argv
from piprov.core.config import get_config
from piprov.core.download import fetch_text
from piprov.core.errors import CommandError, PrerequisiteError, VerificationError
from piprov.core.host import home_dir, is_root, user_exists
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager
from piprov.core.versions import (
    NodeCompatTable,
    NodeSelection,
    SelectionReason,
    highest_version,
    parse_glibcxx_versions,
    select_node_version,
)
from piprov.services.shell_profile import configure_profiles

logger = get_logger(__name__)

NVM_VERSION = "v0.39.7"
NVM_INSTALL_URL = f"https://raw.githubusercontent.com/nvm-sh/nvm/{NVM_VERSION}/install.sh"

LIBSTDCXX_NAME = "libstdc++.so.6"
LIBSTDCXX_CANDIDATES = [
    Path("/usr/lib/arm-linux-gnueabihf") / LIBSTDCXX_NAME,
    Path("/lib/arm-linux-gnueabihf") / LIBSTDCXX_NAME,
]
LIBSTDCXX_SEARCH_ROOTS = [Path("/usr/lib"), Path("/lib")]

BUILD_TOOLS = ["build-essential", "python3"]

# Accounts commonly present on Pi / cloud images
DEFAULT_EXTRA_USERS = ["pi", "ubuntu", "debian", "admin"]

LIBRARY_HINT = "sudo apt-get update && sudo apt-get upgrade && sudo apt-get install libstdc++6"


class LibstdcxxProbe:
    """Finds libstdc++.so.6 and reads the GLIBCXX versions it exports."""

    def __init__(self, candidates: Optional[Sequence[Path]] = None,
                 search_roots: Optional[Sequence[Path]] = None):
        self.candidates = [Path(p) for p in (LIBSTDCXX_CANDIDATES if candidates is None else candidates)]
        self.search_roots = [Path(p) for p in (LIBSTDCXX_SEARCH_ROOTS if search_roots is None else search_roots)]

    def find(self) -> Optional[Path]:
        for candidate in self.candidates:
            if candidate.is_file():
                return candidate
        for root in self.search_roots:
            if not root.is_dir():
                continue
            for match in sorted(root.rglob(LIBSTDCXX_NAME)):
                if match.is_file():
                    return match
        return None

    def detect(self) -> Optional[str]:
        """Highest GLIBCXX version, or None when the library cannot be read."""
        path = self.find()
        if path is None:
            logger.warning(f"Could not find {LIBSTDCXX_NAME}")
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None
        version = highest_version(parse_glibcxx_versions(data))
        logger.debug(f"{path}: highest GLIBCXX {version}")
        return version


class Nvm:
    """nvm is a shell function, so every call sources nvm.sh in a bash shell."""

    def __init__(self, runner: Optional[CommandRunner] = None, user: Optional[str] = None,
                 nvm_dir: Optional[Path] = None):
        self.runner = runner or CommandRunner()
        self.user = user
        if nvm_dir is not None:
            self.nvm_dir = Path(nvm_dir)
        elif user is None and os.environ.get("NVM_DIR"):
            self.nvm_dir = Path(os.environ["NVM_DIR"])
        else:
            self.nvm_dir = home_dir(user) / ".nvm"

    def is_installed(self) -> bool:
        return (self.nvm_dir / "nvm.sh").is_file()

    def install(self):
        """Run the official nvm install script.

        Raises:
            PrerequisiteError: If nvm.sh is still missing afterwards
        """
        who = f" for user {self.user}" if self.user else ""
        logger.info(f"Installing NVM {NVM_VERSION}{who}...")
        if self.runner.mock:
            logger.info(f"MOCK: Would pipe {NVM_INSTALL_URL} to bash")
            return
        script = fetch_text(NVM_INSTALL_URL)
        try:
            self.runner.run(["bash"], input_text=script, user=self.user)
        except CommandError as e:
            raise PrerequisiteError(f"Failed to install NVM{who}: {e}")
        if not self.is_installed():
            raise PrerequisiteError(f"NVM install finished but {self.nvm_dir / 'nvm.sh'} is missing")
        logger.info(f"✓ NVM installed{who}")

    def _script(self, command: str) -> str:
        return (f"export NVM_DIR={shlex.quote(str(self.nvm_dir))}; "
                f'. "$NVM_DIR/nvm.sh" && {command}')

    def run(self, *args: str, check: bool = True, timeout: Optional[float] = None) -> CmdResult:
        return self.runner.shell(self._script(f"nvm {format_argv(args)}"),
                                 check=check, timeout=timeout, user=self.user)

    def node(self, version: str, *args: str) -> CmdResult:
        """Run ``node`` under ``version`` (never raises)."""
        command = f"nvm use --silent {shlex.quote(version)} >/dev/null && node {format_argv(args)}"
        return self.runner.shell(self._script(command), check=False, user=self.user)

    def npm_version(self, version: str) -> str:
        command = f"nvm use --silent {shlex.quote(version)} >/dev/null && npm --version"
        return self.runner.shell(self._script(command), check=False, user=self.user).output.strip()

    def has_version(self, version: str) -> bool:
        return self.run("which", version, check=False).ok

    def version(self) -> str:
        lines = self.run("--version", check=False).output.strip().splitlines()
        return lines[0] if lines else "unknown"


@dataclass
class InstallPlan:
    version: str
    from_source: bool = False
    selection: Optional[NodeSelection] = None


@dataclass
class NodeResult:
    version: str
    node_version: str = ""
    npm_version: str = ""
    nvm_version: str = ""
    from_source: bool = False
    selection: Optional[NodeSelection] = None
    profiles: List[Path] = field(default_factory=list)
    other_users: List[str] = field(default_factory=list)


class NodeSetup:
    """Installs nvm and a Node.js release that actually runs on this host."""

    def __init__(
        self,
        target: Optional[str] = None,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        confirm: Optional[Callable[..., bool]] = None,
        table: Optional[NodeCompatTable] = None,
        probe: Optional[LibstdcxxProbe] = None,
        nvm: Optional[Nvm] = None,
        extra_users: Optional[Sequence[str]] = None,
    ):
        self.table = table or NodeCompatTable.load()
        self.target = target or self.table.default
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.confirm = confirm or (lambda message, default=False: default)
        self.probe = probe or LibstdcxxProbe()
        self.nvm = nvm or Nvm(self.runner)
        self.extra_users = list(DEFAULT_EXTRA_USERS if extra_users is None else extra_users)

    def _package_manager(self) -> Optional[PackageManager]:
        if self.packages is None:
            try:
                self.packages = PackageManager.detect(self.runner, allowed=["apt-get"])
            except PrerequisiteError:
                return None
        return self.packages

    def run(self) -> NodeResult:
        logger.info("Starting NVM and Node.js installation...")
        self.ensure_nvm(self.nvm)

        if self.nvm.has_version(self.target):
            logger.info(f"✓ Node.js {self.target} is already installed")
            result = NodeResult(self.target)
            self.activate(self.target)
            if not self.node_works(self.target)[0]:
                result.from_source = self.repair(self.target)
        else:
            plan = self.plan()
            result = NodeResult(plan.version, selection=plan.selection)
            result.from_source = self.install(plan)
            self.activate(plan.version)

        self.report(result)
        result.profiles = configure_profiles(home_dir(), mock=self.runner.mock)
        if is_root():
            result.other_users = self.configure_other_users()
        return result

    def ensure_nvm(self, nvm: Nvm):
        if nvm.is_installed():
            logger.info(f"✓ NVM is already installed ({nvm.nvm_dir})")
            return
        nvm.install()

    # -- version planning ---------------------------------------------------

    def _select(self) -> NodeSelection:
        return select_node_version(self.probe.detect(), self.table, self.target)

    def plan(self) -> InstallPlan:
        """Decide which release to install and whether to build it from source."""
        selection = self._select()
        if selection.reason == SelectionReason.UNKNOWN_LIBRARY:
            logger.warning("Could not determine libstdc++ version, proceeding anyway")
            return InstallPlan(self.target, selection=selection)
        logger.info(f"Current GLIBCXX version: {selection.detected}")
        if selection.reason == SelectionReason.COMPATIBLE:
            logger.info(f"✓ libstdc++ is compatible with Node.js {self.target}")
            return InstallPlan(self.target, selection=selection)

        logger.error(f"System libstdc++ ({selection.detected}) is too old for Node.js {self.target} "
                     f"(requires GLIBCXX_{selection.required})")
        if self.update_libstdcxx():
            selection = self._select()
            logger.info(f"GLIBCXX version after update: {selection.detected}")
            if selection.reason in (SelectionReason.COMPATIBLE, SelectionReason.UNKNOWN_LIBRARY):
                logger.info("✓ libstdc++ updated and compatible")
                return InstallPlan(self.target, selection=selection)

        if selection.reason == SelectionReason.FALLBACK:
            logger.warning(f"Node.js {self.target} may not work with your system libraries")
            if self.confirm(f"Install {selection.version} instead of {self.target}?", default=True):
                logger.info(f"Switching to Node.js {selection.version} for compatibility")
                return InstallPlan(selection.version, selection=selection)

        logger.warning(f"No compatible prebuilt release; Node.js {self.target} will be built from source")
        logger.info(f"Alternatively update system libraries: {LIBRARY_HINT}")
        return InstallPlan(self.target, from_source=True, selection=selection)

    def update_libstdcxx(self) -> bool:
        packages = self._package_manager()
        if packages is None:
            logger.warning("apt-get not available, cannot update libstdc++ automatically")
            return False
        logger.info("Attempting to update libstdc++...")
        packages.update(tolerate_failure=True)
        return packages.try_install("libstdc++6")

    # -- install / repair ---------------------------------------------------

    def node_works(self, version: str) -> Tuple[bool, str]:
        """``node --version`` exits 0 and does not complain about GLIBCXX."""
        result = self.nvm.node(version, "--version")
        output = result.output.strip()
        return result.ok and "GLIBCXX" not in output, output

    def install(self, plan: InstallPlan) -> bool:
        """Install ``plan.version``; returns True if it was built from source.

        Raises:
            VerificationError: If the installed node cannot run
        """
        if plan.from_source:
            self.build_from_source(plan.version)
            return True

        logger.info(f"Installing Node.js {plan.version} (binary)...")
        installed = self.nvm.run("install", plan.version, check=False)
        if not installed.ok:
            logger.warning("Binary installation failed or had issues")

        ok, output = self.node_works(plan.version)
        if ok:
            logger.info(f"✓ Node.js {plan.version} installed and working")
            return False
        if "GLIBCXX" not in output:
            raise VerificationError(f"Node.js installation may have failed. Error: {output or installed.output}")

        logger.error("Node.js binary installed but cannot run due to a GLIBCXX library issue")
        self.build_from_source(plan.version)
        return True

    def repair(self, version: str) -> bool:
        """Fix an installed release that no longer runs.

        Returns:
            True if it had to be rebuilt from source
        """
        ok, output = self.node_works(version)
        if "GLIBCXX" not in output:
            logger.warning(f"Node.js is installed but verification failed: {output}")
            return False

        logger.error(f"Node.js {version} is installed but cannot run due to a GLIBCXX library issue")
        if self.update_libstdcxx() and self.node_works(version)[0]:
            logger.info("✓ Node.js works after the library update")
            return False

        logger.info("Library update didn't help, rebuilding from source...")
        self.build_from_source(version)
        return True

    def build_from_source(self, version: str):
        """Compile ``version`` with ``nvm install -s`` (10-30 minutes on a Pi).

        Raises:
            PrerequisiteError: Build tools cannot be installed
            VerificationError: The build fails or node still cannot run
        """
        if not (self.runner.which("make") and self.runner.which("g++")):
            packages = self._package_manager()
            if packages is None:
                raise PrerequisiteError(
                    "Cannot install build tools automatically. "
                    f"Please install {' and '.join(BUILD_TOOLS)} manually."
                )
            logger.info("Installing build tools...")
            packages.update(tolerate_failure=True)
            try:
                packages.install(*BUILD_TOOLS)
            except CommandError as e:
                raise PrerequisiteError(
                    f"Cannot build Node.js without build tools. "
                    f"Please install manually: sudo apt-get install {' '.join(BUILD_TOOLS)}\n{e}"
                )

        logger.info("Removing binary installation...")
        self.nvm.run("uninstall", version, check=False)

        logger.info(f"Building Node.js {version} from source (this may take 10-30 minutes)...")
        try:
            self.nvm.run("install", "-s", version, timeout=get_config().source_build_timeout)
        except CommandError as e:
            raise VerificationError(
                f"Failed to build Node.js {version} from source. "
                f"Update system libraries ({LIBRARY_HINT}) or try a different version.\n{e}"
            )

        ok, output = self.node_works(version)
        if not ok:
            raise VerificationError(
                f"Node.js {version} built from source but still cannot run: {output}\n"
                f"Update system libraries manually: {LIBRARY_HINT}"
            )
        logger.info(f"✓ Node.js {version} built from source and working")

    def activate(self, version: str):
        if self.nvm.run("alias", "default", version, check=False).ok:
            logger.info(f"✓ Node.js {version} set as default")
        else:
            logger.warning(f"Failed to set Node.js {version} as default")

    def report(self, result: NodeResult):
        ok, output = self.node_works(result.version)
        if not ok:
            raise VerificationError(
                f"Node.js {result.version} cannot run: {output}\n"
                f"Update system libraries ({LIBRARY_HINT}) or rebuild from source: "
                f"nvm uninstall {result.version} && nvm install -s {result.version}"
            )
        result.node_version = output
        result.npm_version = self.nvm.npm_version(result.version)
        result.nvm_version = self.nvm.version()
        logger.info(f"✓ Node.js: {result.node_version}, npm: {result.npm_version}, "
                    f"nvm: {result.nvm_version}")

    # -- other accounts -----------------------------------------------------

    def configure_other_users(self) -> List[str]:
        """As root, offer nvm to the usual login accounts that exist."""
        found = [u for u in self.extra_users if user_exists(u)]
        if not found:
            return []
        if not self.confirm(f"Install NVM for users: {' '.join(found)}?"):
            return []

        configured = []
        for username in found:
            try:
                nvm = Nvm(self.runner, user=username)
                self.ensure_nvm(nvm)
                home = home_dir(username)
                stat = home.stat()
                configure_profiles(home, owner=(stat.st_uid, stat.st_gid), mock=self.runner.mock)
                configured.append(username)
            except (PrerequisiteError, OSError) as e:
                logger.warning(f"Failed to configure NVM for user {username}: {e}")
        return configured
