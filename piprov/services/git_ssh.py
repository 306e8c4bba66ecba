"""Git installation and a dedicated GitHub SSH key."""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from piprov.core.command import CommandRunner
from piprov.core.errors import CommandError, PrerequisiteError, VerificationError
from piprov.core.file_edit import append_block, edit_file
from piprov.core.host import hostname
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager
from piprov.core.templating import render

logger = get_logger(__name__)

DEFAULT_KEY_NAME = "github_bot"
GITHUB_HOST = "github.com"

GITHUB_HOST_TEMPLATE = """\
# GitHub configuration - Added by piprov
Host {{ host }}
    HostName {{ host }}
    User git
    IdentityFile {{ key_path }}
    IdentitiesOnly yes
"""

_HOST_LINE_RE = re.compile(r"^\s*Host\s+(.+)$", re.IGNORECASE)
_OUR_COMMENT = "# GitHub configuration - Added by piprov"


def _host_blocks(lines):
    """Yield (start, end, hosts) for every ``Host`` block in ``lines``."""
    starts = [(i, _HOST_LINE_RE.match(line)) for i, line in enumerate(lines)]
    starts = [(i, m.group(1).split()) for i, m in starts if m]
    for n, (start, hosts) in enumerate(starts):
        end = starts[n + 1][0] if n + 1 < len(starts) else len(lines)
        yield start, end, hosts


def github_block_uses_key(text: str, key_path: Path) -> bool:
    lines = text.splitlines()
    for start, end, hosts in _host_blocks(lines):
        if GITHUB_HOST not in hosts:
            continue
        for line in lines[start + 1:end]:
            parts = line.split()
            if len(parts) >= 2 and parts[0].lower() == "identityfile" \
                    and os.path.expanduser(parts[1]) == str(key_path):
                return True
    return False


def drop_github_block(text: str) -> str:
    """Remove ``Host github.com`` blocks (up to the next ``Host`` line)."""
    lines = text.splitlines()
    drop = set()
    for start, end, hosts in _host_blocks(lines):
        if hosts == [GITHUB_HOST]:
            drop.update(range(start, end))
            if start > 0 and lines[start - 1].strip() == _OUR_COMMENT:
                drop.add(start - 1)
    kept = [line for i, line in enumerate(lines) if i not in drop]
    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept) + ("\n" if kept else "")


def configure_github_host(text: str, key_path: Path) -> str:
    """SSH config text whose github.com entry uses ``key_path``."""
    if github_block_uses_key(text, key_path):
        return text
    text = drop_github_block(text)
    return append_block(text, render(GITHUB_HOST_TEMPLATE, host=GITHUB_HOST, key_path=key_path))


@dataclass
class GitResult:
    git_version: str
    key_path: Path
    public_key: str = ""
    key_generated: bool = False
    key_type: str = ""


class GitSetup:
    """Installs git and wires an ed25519 deploy key to github.com."""

    def __init__(
        self,
        key_name: str = DEFAULT_KEY_NAME,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        ssh_dir: Optional[Path] = None,
    ):
        self.key_name = key_name
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.ssh_dir = Path(ssh_dir) if ssh_dir else Path.home() / ".ssh"
        self.key_path = self.ssh_dir / key_name
        self.public_key_path = self.ssh_dir / f"{key_name}.pub"
        self.config_path = self.ssh_dir / "config"

    def run(self) -> GitResult:
        git_version = self.ensure_git()
        generated = self.ensure_key()
        self.configure_ssh()
        result = GitResult(git_version, self.key_path, key_generated=generated)
        result.key_type = self.verify()
        if self.public_key_path.exists():
            result.public_key = self.public_key_path.read_text().strip()
        return result

    def ensure_git(self) -> str:
        if self.runner.which("git"):
            version = self.runner.run(["git", "--version"]).stdout.strip()
            logger.info(f"✓ Git is already installed: {version}")
            return version

        logger.info("Git is not installed. Installing git...")
        packages = self.packages or PackageManager.detect(self.runner)
        packages.update(tolerate_failure=True)
        packages.install("git")

        try:
            version = self.runner.run(["git", "--version"]).stdout.strip()
        except CommandError as e:
            raise PrerequisiteError(f"Git installation verification failed: {e}")
        logger.info(f"✓ Git installed: {version}")
        return version

    def ensure_key(self) -> bool:
        """Generate the key pair unless both halves exist. Returns True if generated."""
        if self.key_path.exists() and self.public_key_path.exists():
            logger.info(f"✓ SSH key already exists at {self.key_path}")
            return False

        logger.info(f"Generating ed25519 SSH key '{self.key_name}'...")
        if self.runner.mock:
            logger.info(f"MOCK: Would generate {self.key_path}")
            return True

        self.ssh_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.ssh_dir, 0o700)
        # A lone half of a key pair is useless; start over
        self.key_path.unlink(missing_ok=True)
        self.public_key_path.unlink(missing_ok=True)

        self.runner.run([
            "ssh-keygen", "-t", "ed25519", "-f", str(self.key_path), "-N", "",
            "-C", f"{self.key_name}@{hostname()}",
        ])
        os.chmod(self.key_path, 0o600)
        os.chmod(self.public_key_path, 0o644)
        logger.info(f"✓ SSH key generated at {self.key_path}")
        return True

    def configure_ssh(self):
        logger.info(f"Configuring SSH to use {self.key_name} key for GitHub...")
        if not self.runner.mock:
            self.ssh_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.ssh_dir, 0o700)

        result = edit_file(
            self.config_path,
            lambda text: configure_github_host(text, self.key_path),
            markers=[f"Host {GITHUB_HOST}"],
            validator=self._check_config,
            mode=0o600,
            mock=self.runner.mock,
        )
        result.raise_for_outcome("SSH config")
        if not self.runner.mock:
            os.chmod(self.config_path, 0o600)
        if result.changed:
            logger.info("✓ SSH config updated for GitHub")
        else:
            logger.info("✓ SSH config already configured correctly for GitHub")

    def _check_config(self, path: Path):
        if not github_block_uses_key(path.read_text(), self.key_path):
            raise VerificationError(f"github.com entry in {path} does not use {self.key_path}")

    def verify(self) -> str:
        """Check the key type. Returns it (e.g. ED25519)."""
        if self.runner.mock:
            return "ED25519"
        if not (self.key_path.exists() and self.public_key_path.exists()):
            raise VerificationError(f"SSH key files not found at {self.key_path}")

        fingerprint = self.runner.run(["ssh-keygen", "-l", "-f", str(self.public_key_path)]).stdout
        # "256 SHA256:... comment (ED25519)"
        match = re.search(r"\(([A-Z0-9-]+)\)\s*$", fingerprint.strip())
        key_type = match.group(1) if match else "unknown"
        if key_type == "ED25519":
            logger.info(f"✓ SSH key type: {key_type}")
        else:
            logger.warning(f"SSH key type: {key_type} (expected ED25519)")
        return key_type
