"""Caddy reverse proxy installation and Caddyfile management."""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from piprov.core.command import CommandRunner
from piprov.core.download import fetch_text
from piprov.core.errors import CommandError, VerificationError
from piprov.core.file_edit import atomic_write_bytes, edit_file
from piprov.core.host import require_root
from piprov.core.logger import get_logger
from piprov.core.packages import PackageManager
from piprov.core.systemd import SystemdService
from piprov.core.templating import render
from piprov.models.caddy import CaddySite

logger = get_logger(__name__)

CADDY_GPG_URL = "https://dl.cloudsmith.io/public/caddy/stable/gpg.key"
CADDY_SOURCES_URL = "https://dl.cloudsmith.io/public/caddy/stable/debian.deb.txt"
CADDY_KEYRING = Path("/usr/share/keyrings/caddy-stable-archive-keyring.gpg")
CADDY_SOURCES_LIST = Path("/etc/apt/sources.list.d/caddy-stable.list")
CADDYFILE = Path("/etc/caddy/Caddyfile")

PREREQUISITES = ["debian-keyring", "debian-archive-keyring", "apt-transport-https", "curl"]

CADDYFILE_TEMPLATE = """\
{% if site.use_https %}
# Reverse proxy for {{ site.upstream }} with HTTPS
# Caddy obtains and renews the certificate from Let's Encrypt automatically.
# {{ site.domain }} must resolve to this server's IP address.
{% else %}
# Reverse proxy for {{ site.upstream }}
# Caddy listens on port 80 and forwards every request to {{ site.upstream }}.
{% endif %}

{{ site.address }} {
    reverse_proxy {{ site.upstream }}

    header {
        # Hide the server header
        -Server
{% if site.use_https %}
        Access-Control-Allow-Origin *
        Access-Control-Allow-Methods "GET, POST, PUT, DELETE, OPTIONS"
{% endif %}
    }
{% if site.use_https %}

    @health {
        path /health
    }
    handle @health {
        respond "OK" 200
    }
{% endif %}
}
"""


def render_caddyfile(site: CaddySite) -> str:
    """Render the Caddyfile for ``site``.

    Without a domain the site address is ``:80`` (plain HTTP, no certificate).
    With a domain the literal domain is the site address and Caddy manages TLS.
    """
    return render(CADDYFILE_TEMPLATE, site=site)


def caddyfile_markers(site: CaddySite):
    return [f"{site.address} {{", f"    reverse_proxy {site.upstream}"]


@dataclass
class CaddyResult:
    caddyfile: Path
    address: str
    backup_path: Optional[Path] = None
    installed: bool = False
    cancelled: bool = False


class CaddySetup:
    """Installs Caddy from the official apt repository and configures the proxy."""

    def __init__(
        self,
        site: CaddySite,
        runner: Optional[CommandRunner] = None,
        packages: Optional[PackageManager] = None,
        confirm: Optional[Callable[..., bool]] = None,
        caddyfile: Path = CADDYFILE,
        keyring: Path = CADDY_KEYRING,
        sources_list: Path = CADDY_SOURCES_LIST,
    ):
        self.site = site
        self.runner = runner or CommandRunner()
        self.packages = packages
        self.confirm = confirm or (lambda message, default=False: default)
        self.caddyfile = Path(caddyfile)
        self.keyring = Path(keyring)
        self.sources_list = Path(sources_list)
        self.service = SystemdService("caddy", runner=self.runner)

    def _package_manager(self) -> PackageManager:
        if self.packages is None:
            self.packages = PackageManager.detect(self.runner, allowed=["apt-get"], use_sudo=False)
        return self.packages

    def run(self) -> CaddyResult:
        require_root("Caddy setup")

        if self.site.use_https:
            logger.info(f"Domain provided: {self.site.domain} - HTTPS will be configured")
        else:
            logger.info("No domain provided - HTTP only mode (port 80)")

        if self.runner.which("caddy"):
            version = self.runner.run(["caddy", "version"], check=False).stdout.strip()
            logger.warning(f"Caddy is already installed: {version}")
            if not self.confirm("Do you want to continue and reconfigure?"):
                logger.info("Installation cancelled.")
                return CaddyResult(self.caddyfile, self.site.address, cancelled=True)

        self.install()
        result = self.configure()
        result.installed = True
        self.service.restart_and_verify()
        return result

    def install(self):
        """Add the Caddy apt repository and install the package."""
        packages = self._package_manager()
        packages.update(tolerate_failure=True)
        packages.install(*PREREQUISITES)

        logger.info("Adding Caddy repository...")
        self.add_repository()

        packages.update(tolerate_failure=True)
        packages.install("caddy")
        version = self.runner.run(["caddy", "version"], check=False).stdout.strip()
        logger.info(f"✓ Caddy installed successfully: {version}")

    def add_repository(self):
        if self.runner.mock:
            logger.info(f"MOCK: Would add Caddy apt repository to {self.sources_list}")
            return
        armored_key = fetch_text(CADDY_GPG_URL)
        self.keyring.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(
            ["gpg", "--batch", "--yes", "--dearmor", "-o", str(self.keyring)],
            input_text=armored_key,
        )
        atomic_write_bytes(self.sources_list, fetch_text(CADDY_SOURCES_URL).encode(), mode=0o644)

    def validate(self, path: Path):
        """Run ``caddy validate`` against the written file."""
        try:
            self.runner.run(["caddy", "validate", "--config", str(path), "--adapter", "caddyfile"])
        except CommandError as e:
            raise VerificationError(f"Caddyfile validation failed: {e.stderr or e}")

    def configure(self) -> CaddyResult:
        """Write and validate the Caddyfile, restoring the old one on failure."""
        mode = "with HTTPS for " + self.site.domain if self.site.use_https else "(HTTP only)"
        logger.info(f"Configuring Caddy reverse proxy to {self.site.upstream} {mode}...")

        content = render_caddyfile(self.site)
        result = edit_file(
            self.caddyfile,
            lambda _current: content,
            markers=caddyfile_markers(self.site),
            validator=self.validate,
            mock=self.runner.mock,
        )
        result.raise_for_outcome("Caddyfile")

        logger.info(f"✓ Caddyfile written to {self.caddyfile}")
        if self.site.use_https:
            logger.warning(f"Make sure {self.site.domain} DNS points to this server's IP address")
        return CaddyResult(self.caddyfile, self.site.address, backup_path=result.backup_path)
