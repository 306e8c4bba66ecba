"""Version parsing and the Node.js / GLIBCXX compatibility table.

Everything here is pure: the host is probed elsewhere and the detected
GLIBCXX version is passed in, so version selection is testable without a
Raspberry Pi.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

DEFAULT_COMPAT_FILE = Path(__file__).parent.parent / "data" / "node_compat.yml"

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?$")
_GLIBCXX_RE = re.compile(rb"^GLIBCXX_(\d+\.\d+(?:\.\d+)?)$")


@dataclass(frozen=True, order=True)
class Version:
    """A dotted version normalised to three components (3.4 == 3.4.0)."""
    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["Version"]:
        if not text:
            return None
        match = _VERSION_RE.match(text.strip())
        if not match:
            return None
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch or 0))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def meets_requirement(current: Optional[str], required: str) -> bool:
    """True when ``current`` >= ``required``; False if ``current`` is unparseable."""
    current_v = Version.parse(current)
    required_v = Version.parse(required)
    if current_v is None or required_v is None:
        return False
    return current_v >= required_v


def parse_glibcxx_versions(data: bytes) -> List[str]:
    """Extract ``GLIBCXX_x.y[.z]`` version strings from a libstdc++ image.

    Symbol version names are NUL-terminated strings in the ELF, so the image
    is split on NUL bytes and each chunk must match exactly.
    """
    versions = []
    for chunk in data.split(b"\0"):
        if not chunk.startswith(b"GLIBCXX_"):
            continue
        match = _GLIBCXX_RE.match(chunk)
        if match:
            versions.append(match.group(1).decode())
    return versions


def highest_version(versions: Iterable[str]) -> Optional[str]:
    """Return the highest version, keeping its original spelling.

    When two spellings normalise to the same version (3.4 and 3.4.0) the one
    with an explicit patch component wins.
    """
    best: Optional[str] = None
    best_v: Optional[Version] = None
    for text in versions:
        parsed = Version.parse(text)
        if parsed is None:
            continue
        if best_v is None or parsed > best_v or (parsed == best_v and text.count(".") > best.count(".")):
            best, best_v = text, parsed
    return best


@dataclass
class NodeRelease:
    version: str
    glibcxx: str
    lts: bool = True

    @property
    def major(self) -> Optional[int]:
        parsed = Version.parse(self.version)
        return parsed.major if parsed else None


@dataclass
class NodeCompatTable:
    default: str
    releases: List[NodeRelease] = field(default_factory=list)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "NodeCompatTable":
        """Load the compatibility table from YAML.

        Raises:
            FileNotFoundError: Table file not found
            ValueError: Invalid table format
        """
        path = Path(path) if path else DEFAULT_COMPAT_FILE
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "default" not in data or not data.get("releases"):
            raise ValueError(f"Compatibility table {path} needs 'default' and 'releases'")

        releases = []
        for entry in data["releases"]:
            try:
                releases.append(NodeRelease(
                    version=str(entry["version"]),
                    glibcxx=str(entry["glibcxx"]),
                    lts=bool(entry.get("lts", True)),
                ))
            except KeyError as e:
                raise ValueError(f"Release entry in {path} is missing {e}")
        return cls(default=str(data["default"]), releases=releases)

    def requirement_for(self, version: str) -> Optional[str]:
        """GLIBCXX requirement of ``version``: exact entry, else same major line."""
        for release in self.releases:
            if release.version == version:
                return release.glibcxx
        parsed = Version.parse(version)
        if parsed is not None:
            for release in self.releases:
                if release.major == parsed.major:
                    return release.glibcxx
        return None

    def fallbacks(self, exclude: Optional[str] = None) -> List[NodeRelease]:
        """LTS releases, newest first."""
        candidates = [r for r in self.releases if r.lts and r.version != exclude]
        return sorted(candidates, key=lambda r: Version.parse(r.version) or Version(0, 0), reverse=True)


class SelectionReason(str, Enum):
    COMPATIBLE = "compatible"
    UNKNOWN_LIBRARY = "unknown-library"  # could not read GLIBCXX; try the target
    FALLBACK = "fallback"
    INCOMPATIBLE = "incompatible"  # nothing fits; build from source


@dataclass
class NodeSelection:
    target: str
    version: Optional[str]
    reason: SelectionReason
    required: Optional[str] = None
    detected: Optional[str] = None

    @property
    def switched(self) -> bool:
        return self.version is not None and self.version != self.target


def select_node_version(
    detected_glibcxx: Optional[str],
    table: NodeCompatTable,
    target: Optional[str] = None,
) -> NodeSelection:
    """Map the detected GLIBCXX version to the Node.js release to install.

    Args:
        detected_glibcxx: Highest GLIBCXX version on the host (None if unknown)
        table: Compatibility table
        target: Preferred release (default: the table's default)

    Returns:
        NodeSelection naming the chosen release and why
    """
    target = target or table.default
    required = table.requirement_for(target) or table.requirement_for(table.default)

    if Version.parse(detected_glibcxx) is None:
        return NodeSelection(target, target, SelectionReason.UNKNOWN_LIBRARY, required, detected_glibcxx)

    if required is None or meets_requirement(detected_glibcxx, required):
        return NodeSelection(target, target, SelectionReason.COMPATIBLE, required, detected_glibcxx)

    for release in table.fallbacks(exclude=target):
        if meets_requirement(detected_glibcxx, release.glibcxx):
            return NodeSelection(target, release.version, SelectionReason.FALLBACK, required, detected_glibcxx)

    return NodeSelection(target, None, SelectionReason.INCOMPATIBLE, required, detected_glibcxx)
