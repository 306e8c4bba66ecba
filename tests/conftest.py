"""Shared test fixtures for piprov tests."""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from piprov.core.command import CmdResult, CommandRunner, _redact
from piprov.core.config import ProvisionConfig, set_config
from piprov.core.errors import CommandError
from piprov.core.packages import PackageManager


@dataclass
class Call:
    """One command the fake runner was asked to run."""
    argv: List[str]
    cwd: Optional[str] = None
    env: Optional[dict] = None
    input_text: Optional[str] = None
    user: Optional[str] = None
    redact: Tuple[str, ...] = ()

    @property
    def line(self) -> str:
        return " ".join(self.argv)


@dataclass
class _Scripted:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Optional[Callable[[Call], None]] = None


class FakeRunner(CommandRunner):
    """Records commands instead of running them.

    Every command succeeds with empty output unless a rule registered with
    :meth:`script` matches (substring of the joined argv; the most recently
    added pattern wins). Several results for the same pattern are consumed
    in order, the last one repeats.
    """

    def __init__(self, available=(), mock: bool = False):
        super().__init__(mock=mock)
        self.available = set(available)
        self.calls: List[Call] = []
        self._rules: Dict[str, List[_Scripted]] = {}

    def script(self, pattern: str, returncode: int = 0, stdout: str = "", stderr: str = "",
               effect: Optional[Callable[[Call], None]] = None) -> "FakeRunner":
        self._rules.setdefault(pattern, []).append(_Scripted(returncode, stdout, stderr, effect))
        return self

    def _scripted_for(self, line: str) -> _Scripted:
        for pattern, queue in reversed(list(self._rules.items())):
            if pattern in line:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        return _Scripted()

    def run(self, argv, *, check=True, cwd=None, env=None, input_text=None, timeout=None,
            user=None, redact=()):
        call = Call(list(argv), cwd=cwd, env=dict(env) if env else None,
                    input_text=input_text, user=user, redact=tuple(redact))
        self.calls.append(call)
        scripted = self._scripted_for(call.line)
        if scripted.effect:
            scripted.effect(call)
        result = CmdResult(call.argv, scripted.returncode, scripted.stdout, scripted.stderr)
        if check and not result.ok:
            raise CommandError(_redact(call.argv, redact), result.returncode, result.stderr)
        return result

    def which(self, name: str, user: Optional[str] = None) -> bool:
        return name in self.available

    @property
    def lines(self) -> List[str]:
        return [call.line for call in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in line for line in self.lines)

    def find(self, fragment: str) -> Call:
        for call in self.calls:
            if fragment in call.line:
                return call
        raise AssertionError(f"No command containing {fragment!r}. Ran:\n" + "\n".join(self.lines))


# Modules that import is_root directly
ROOT_CHECKS = [
    "piprov.core.host.is_root",
    "piprov.core.packages.is_root",
    "piprov.services.docker.is_root",
    "piprov.services.pm2.is_root",
    "piprov.services.node.is_root",
]


def _set_root(monkeypatch, value: bool):
    for target in ROOT_CHECKS:
        monkeypatch.setattr(target, lambda: value)


@pytest.fixture(autouse=True)
def provision_config(monkeypatch):
    """Real-command mode with no waiting."""
    monkeypatch.delenv("PIPROV_MOCK", raising=False)
    config = ProvisionConfig(apt_lock_timeout=0, apt_lock_poll_interval=0, service_start_wait=0)
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def apt(fake_runner):
    """apt-get wrapper on the fake runner without sudo or lock waits."""
    return PackageManager("apt-get", runner=fake_runner, use_sudo=False, lock_wait=lambda: 0.0)


@pytest.fixture
def as_root(monkeypatch):
    _set_root(monkeypatch, True)


@pytest.fixture
def as_user(monkeypatch):
    _set_root(monkeypatch, False)
