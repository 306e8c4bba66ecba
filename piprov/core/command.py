"""External command execution with consistent logging and mock mode.

Every provisioning step shells out through :class:`CommandRunner`, so tests
can swap in a recording runner and ``PIPROV_MOCK=1`` turns a run into a
dry run that only logs what would happen.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from piprov.core.config import get_config
from piprov.core.errors import CommandError
from piprov.core.logger import get_logger

logger = get_logger(__name__)

# Noise that nvm and apt print in non-interactive shells
NOISE_PATTERNS = ("tput: unknown terminal", "manpath:")


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr with known terminal noise removed."""
        text = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return filter_noise(text)


def filter_noise(text: str) -> str:
    return "\n".join(
        line for line in text.splitlines()
        if not any(pattern in line for pattern in NOISE_PATTERNS)
    )


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _redact(argv: Sequence[str], secrets: Sequence[str]) -> list[str]:
    shown = []
    for arg in argv:
        for secret in secrets:
            if secret:
                arg = arg.replace(secret, "***")
        shown.append(arg)
    return shown


def is_mock() -> bool:
    """Return True when commands should only be logged."""
    return os.environ.get("PIPROV_MOCK") == "1"


class CommandRunner:
    """Runs host commands, optionally as another user."""

    def __init__(self, mock: Optional[bool] = None):
        self.mock = is_mock() if mock is None else mock

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
        user: Optional[str] = None,
        redact: Sequence[str] = (),
    ) -> CmdResult:
        """Run a command and capture its output.

        Args:
            argv: Command and arguments
            check: Raise CommandError on a non-zero exit
            cwd: Working directory
            env: Extra environment variables
            input_text: Text fed to stdin
            timeout: Seconds before the command is killed (default from config)
            user: Run through ``su - <user> -c`` instead of as the current user
            redact: Secrets to mask in logs and error messages

        Returns:
            CmdResult with exit code and captured output

        Raises:
            CommandError: If check is True and the command fails or is missing
        """
        argv_list = list(argv)
        if user:
            inner = format_argv(argv_list)
            if cwd:
                inner = f"cd {shlex.quote(str(cwd))} && {inner}"
                cwd = None
            argv_list = ["su", "-", user, "-c", inner]

        shown = _redact(argv_list, redact)
        logger.debug(f"CMD {format_argv(shown)}")

        if self.mock:
            logger.info(f"MOCK: Would run {format_argv(shown)}")
            return CmdResult(argv=argv_list, returncode=0)

        try:
            proc = subprocess.run(
                argv_list,
                input=input_text,
                capture_output=True,
                text=True,
                cwd=cwd,
                env=dict(os.environ, **(env or {})),
                timeout=timeout or get_config().command_timeout,
            )
        except FileNotFoundError:
            if check:
                raise CommandError(shown, 127, f"{argv_list[0]}: command not found")
            return CmdResult(argv=argv_list, returncode=127, stderr=f"{argv_list[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            if check:
                raise CommandError(shown, 124, f"timed out after {e.timeout}s")
            return CmdResult(argv=argv_list, returncode=124, stderr=f"timed out after {e.timeout}s")

        result = CmdResult(
            argv=argv_list,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if result.stdout:
            logger.debug(f"STDOUT {result.stdout.strip()}")
        if result.stderr:
            logger.debug(f"STDERR {result.stderr.strip()}")

        if check and not result.ok:
            raise CommandError(shown, result.returncode, filter_noise(result.stderr))
        return result

    def shell(self, script: str, **kwargs) -> CmdResult:
        """Run a bash snippet (for shell functions such as nvm)."""
        return self.run(["bash", "-c", script], **kwargs)

    def which(self, name: str, user: Optional[str] = None) -> bool:
        """Return True if ``name`` resolves to an executable."""
        if user:
            result = self.run(["sh", "-c", f"command -v {shlex.quote(name)}"], check=False, user=user)
            return result.ok
        return shutil.which(name) is not None
