"""Disable HDMI output on a Raspberry Pi through the boot config."""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from piprov.core.command import CommandRunner
from piprov.core.errors import PrerequisiteError
from piprov.core.file_edit import append_block, drop_lines, edit_file
from piprov.core.host import BoardKind, CPUINFO, DEVICE_TREE_MODEL, detect_board, require_root
from piprov.core.logger import get_logger

logger = get_logger(__name__)

BOOT_CONFIG_CANDIDATES = [Path("/boot/firmware/config.txt"), Path("/boot/config.txt")]

HDMI_SETTINGS = ["hdmi_blanking=1", "hdmi_ignore_hotplug=1", "hdmi_force_hotplug=0"]
HDMI_KEYS = ("hdmi_force_hotplug=", "hdmi_blanking=", "hdmi_ignore_hotplug=")
ALL_FILTER = "[all]"
HDMI_COMMENT = [
    "# HDMI Disabled - Added by piprov",
    "# These settings permanently disable HDMI output",
]


def find_boot_config(candidates: Sequence[Path] = BOOT_CONFIG_CANDIDATES) -> Path:
    """Newer Raspberry Pi OS keeps config.txt under /boot/firmware.

    Raises:
        PrerequisiteError: If no candidate exists
    """
    for candidate in candidates:
        if Path(candidate).is_file():
            return Path(candidate)
    raise PrerequisiteError(
        "Could not find boot configuration file. Expected "
        + " or ".join(str(c) for c in candidates)
    )


def hdmi_already_disabled(text: str) -> bool:
    lines = text.splitlines()
    return any(line.startswith(("hdmi_blanking=1", "hdmi_ignore_hotplug=1")) for line in lines)


def disable_hdmi(text: str) -> str:
    """Replace every HDMI hotplug/blanking line with the disable settings.

    When config.txt has conditional sections (``[pi4]`` and friends) the block
    is appended under ``[all]`` so it applies to every board.
    """
    lines = text.splitlines()
    # An [all] filter directly above our comment belongs to a previous run
    ours = {i for i, line in enumerate(lines[:-1])
            if line == ALL_FILTER and lines[i + 1] == HDMI_COMMENT[0]}
    text = "".join(f"{line}\n" for i, line in enumerate(lines) if i not in ours)
    text = drop_lines(text, lambda line: line.startswith(HDMI_KEYS) or line in HDMI_COMMENT)

    block = HDMI_COMMENT + HDMI_SETTINGS
    if any(line.startswith("[") for line in text.splitlines()):
        block = [ALL_FILTER] + block
    return append_block(text, "\n".join(block))


@dataclass
class HdmiResult:
    config_path: Optional[Path] = None
    backup_path: Optional[Path] = None
    immediate: bool = False
    cancelled: bool = False


class HdmiDisabler:
    """Persists HDMI-off in config.txt and switches the display off now."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        confirm: Optional[Callable[..., bool]] = None,
        config_candidates: Sequence[Path] = BOOT_CONFIG_CANDIDATES,
        model_path: Path = DEVICE_TREE_MODEL,
        cpuinfo_path: Path = CPUINFO,
    ):
        self.runner = runner or CommandRunner()
        self.confirm = confirm or (lambda message, default=False: default)
        self.config_candidates: List[Path] = [Path(p) for p in config_candidates]
        self.model_path = model_path
        self.cpuinfo_path = cpuinfo_path

    def check_hardware(self) -> bool:
        logger.info("Checking if running on Raspberry Pi...")
        kind, description = detect_board(self.model_path, self.cpuinfo_path)
        if kind == BoardKind.RASPBERRY_PI:
            logger.info(f"✓ Detected {description}")
            return True
        if kind == BoardKind.BROADCOM:
            logger.warning("Detected BCM chip, but not confirmed as Raspberry Pi")
        else:
            logger.warning("Could not confirm Raspberry Pi hardware")
        return self.confirm("Continue anyway?")

    def run(self) -> HdmiResult:
        require_root("Disabling HDMI")
        if not self.check_hardware():
            return HdmiResult(cancelled=True)

        config_path = find_boot_config(self.config_candidates)
        logger.info(f"✓ Found boot configuration file: {config_path}")

        if hdmi_already_disabled(config_path.read_text()):
            logger.warning("HDMI appears to be already disabled in the configuration")
            if not self.confirm("Do you want to continue and ensure settings are correct?"):
                logger.info("Operation cancelled.")
                return HdmiResult(config_path, cancelled=True)

        logger.info("Disabling HDMI in boot configuration...")
        edit = edit_file(config_path, disable_hdmi, markers=HDMI_SETTINGS, mock=self.runner.mock)
        edit.raise_for_outcome("HDMI settings")
        logger.info("✓ HDMI disable settings verified in configuration file")

        result = HdmiResult(config_path, backup_path=edit.backup_path)
        result.immediate = self.power_off_display()
        logger.warning("A system reboot is recommended to ensure the change persists")
        return result

    def power_off_display(self) -> bool:
        """Try vcgencmd, then the legacy tvservice. Failure is not fatal."""
        if self.runner.which("vcgencmd"):
            if self.runner.run(["vcgencmd", "display_power", "0"], check=False).ok:
                logger.info("✓ HDMI output disabled immediately using vcgencmd")
                return True
            logger.warning("vcgencmd display_power 0 failed, trying alternative method...")
        if self.runner.which("tvservice"):
            if self.runner.run(["tvservice", "-o"], check=False).ok:
                logger.info("✓ HDMI output disabled immediately using tvservice")
                return True
            logger.warning("tvservice -o failed")
        logger.warning("Could not disable HDMI immediately. HDMI will be disabled after reboot.")
        return False
