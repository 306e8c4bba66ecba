"""Facts about the host being provisioned: users, OS release, hardware."""
import os
import platform
import pwd
import re
import socket
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from piprov.core.errors import PrerequisiteError

OS_RELEASE = Path("/etc/os-release")
DEVICE_TREE_MODEL = Path("/proc/device-tree/model")
CPUINFO = Path("/proc/cpuinfo")


class BoardKind(str, Enum):
    RASPBERRY_PI = "raspberry-pi"
    BROADCOM = "broadcom"  # BCM SoC, not confirmed as a Pi
    UNKNOWN = "unknown"


def is_root() -> bool:
    return os.geteuid() == 0


def require_root(action: str = "This command"):
    """Raise PrerequisiteError unless running with EUID 0."""
    if not is_root():
        raise PrerequisiteError(f"{action} must be run as root (use sudo)")


def current_user() -> str:
    return pwd.getpwuid(os.geteuid()).pw_name


def user_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


def home_dir(username: Optional[str] = None) -> Path:
    """Home directory of ``username`` (or of the current user)."""
    if username is None:
        return Path.home()
    try:
        return Path(pwd.getpwnam(username).pw_dir)
    except KeyError:
        raise PrerequisiteError(f"Cannot determine home directory for user {username}")


def invoking_user(path_hint: Optional[str] = None) -> Optional[str]:
    """Resolve the human user behind a (possibly sudo) invocation.

    As root, prefer ``SUDO_USER``, then the ``/home/<user>`` component of
    ``path_hint``. Not root: the current user. Returns None when unknown.
    """
    if not is_root():
        return current_user()

    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and sudo_user != "root":
        return sudo_user

    if path_hint:
        match = re.match(r"^/home/([^/]+)", str(path_hint))
        if match:
            return match.group(1)
    return None


def hostname() -> str:
    return socket.gethostname()


def machine() -> str:
    return platform.machine()


def read_os_release(path: Path = OS_RELEASE) -> Dict[str, str]:
    """Parse /etc/os-release into a dict (quotes stripped)."""
    facts: Dict[str, str] = {}
    try:
        text = path.read_text()
    except OSError:
        return facts
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        facts[key] = value.strip().strip('"').strip("'")
    return facts


def detect_board(model_path: Path = DEVICE_TREE_MODEL, cpuinfo_path: Path = CPUINFO):
    """Classify the board from the device tree model or /proc/cpuinfo.

    Returns:
        Tuple of (BoardKind, description)
    """
    try:
        model = model_path.read_bytes().replace(b"\0", b"").decode(errors="replace").strip()
    except OSError:
        model = ""
    if "raspberry pi" in model.lower():
        return BoardKind.RASPBERRY_PI, model

    try:
        cpuinfo = cpuinfo_path.read_text(errors="replace")
    except OSError:
        cpuinfo = ""
    if "raspberry pi" in cpuinfo.lower():
        return BoardKind.RASPBERRY_PI, "Raspberry Pi"
    if "bcm" in cpuinfo.lower():
        return BoardKind.BROADCOM, "Broadcom SoC"
    return BoardKind.UNKNOWN, model or "unknown"
