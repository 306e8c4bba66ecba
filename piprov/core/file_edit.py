"""Transactional edits of system configuration files.

One edit is: back up the file, apply a text transform, atomically replace the
file, re-read it and check the expected markers. If the check fails the
original bytes are put back. There are exactly three outcomes; a file is
never left half-edited.
"""
from __future__ import annotations

import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Pattern, Union

from piprov.core.command import is_mock
from piprov.core.errors import ProvisionError, VerificationError
from piprov.core.logger import get_logger

logger = get_logger(__name__)

Marker = Union[str, Pattern[str]]
Transform = Callable[[str], str]
Validator = Callable[[Path], None]


class EditOutcome(str, Enum):
    SUCCESS = "success"
    TRANSFORM_FAILED = "transform_failed"  # nothing written
    VERIFY_FAILED = "verify_failed"  # written, then restored


@dataclass
class EditResult:
    path: Path
    outcome: EditOutcome
    backup_path: Optional[Path] = None
    changed: bool = False
    missing: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == EditOutcome.SUCCESS

    def raise_for_outcome(self, what: str = "configuration"):
        """Turn a failed edit into the matching ProvisionError."""
        if self.outcome == EditOutcome.TRANSFORM_FAILED:
            raise ProvisionError(f"Failed to update {what} in {self.path}: {self.error}")
        if self.outcome == EditOutcome.VERIFY_FAILED:
            detail = self.error or f"missing {', '.join(self.missing)}"
            raise VerificationError(
                f"Verification of {what} in {self.path} failed ({detail}); "
                f"original file restored"
            )


def backup_path_for(path: Path, when: Optional[datetime] = None) -> Path:
    """``<path>.backup.<YYYYmmdd_HHMMSS>``, suffixed if that name is taken."""
    stamp = (when or datetime.now()).strftime("%Y%m%d_%H%M%S")
    candidate = path.with_name(f"{path.name}.backup.{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.backup.{stamp}_{counter}")
        counter += 1
    return candidate


def missing_markers(text: str, markers: Iterable[Marker]) -> List[str]:
    """Return the markers not found in ``text``.

    Plain strings must match a whole line (trailing whitespace ignored);
    compiled patterns are searched in multiline mode.
    """
    lines = {line.rstrip() for line in text.splitlines()}
    missing = []
    for marker in markers:
        if isinstance(marker, str):
            if marker not in lines:
                missing.append(marker)
        elif not re.search(marker.pattern, text, marker.flags | re.MULTILINE):
            missing.append(marker.pattern)
    return missing


def atomic_write_bytes(path: Path, data: bytes, mode: Optional[int] = None,
                       owner: Optional[tuple] = None):
    """Write ``data`` to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        if owner is not None and os.geteuid() == 0:
            os.chown(tmp, *owner)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class TransactionalEdit:
    """Read -> transform -> atomic rename -> verify -> rollback on failure."""

    def __init__(
        self,
        path: Union[str, Path],
        transform: Transform,
        markers: Iterable[Marker] = (),
        validator: Optional[Validator] = None,
        backup: bool = True,
        mode: Optional[int] = None,
        mock: Optional[bool] = None,
    ):
        """Describe one edit.

        Args:
            path: File to edit (created if missing)
            transform: Function from current text ("" if absent) to new text
            markers: Lines/patterns that must be present after the write
            validator: Extra check on the written file; raises ProvisionError to fail
            backup: Keep a timestamped copy of the existing file on disk
            mode: Permission bits for the result (default: keep existing, else 0o644)
            mock: Only report what would be written
        """
        self.path = Path(path)
        self.transform = transform
        self.markers = list(markers)
        self.validator = validator
        self.backup = backup
        self.mode = mode
        self.mock = is_mock() if mock is None else mock

    def apply(self) -> EditResult:
        existed = self.path.exists()
        original = self.path.read_bytes() if existed else b""
        original_text = original.decode(errors="surrogateescape")
        stat = self.path.stat() if existed else None

        try:
            new_text = self.transform(original_text)
            new_data = new_text.encode(errors="surrogateescape")
        except Exception as e:
            logger.error(f"Could not prepare new contents for {self.path}: {e}")
            return EditResult(self.path, EditOutcome.TRANSFORM_FAILED, error=str(e))

        changed = new_text != original_text

        if self.mock:
            logger.info(f"MOCK: Would write {self.path} ({len(new_text.splitlines())} lines)")
            missing = missing_markers(new_text, self.markers)
            outcome = EditOutcome.VERIFY_FAILED if missing else EditOutcome.SUCCESS
            return EditResult(self.path, outcome, changed=changed, missing=missing)

        backup_path = None
        if changed:
            if existed and self.backup:
                backup_path = backup_path_for(self.path)
                shutil.copy2(self.path, backup_path)
                logger.info(f"Backed up {self.path} to {backup_path}")

            mode = self.mode
            if mode is None:
                mode = (stat.st_mode & 0o7777) if stat else 0o644
            owner = (stat.st_uid, stat.st_gid) if stat else None
            try:
                atomic_write_bytes(self.path, new_data, mode=mode, owner=owner)
            except OSError as e:
                logger.error(f"Could not write {self.path}: {e}")
                return EditResult(self.path, EditOutcome.TRANSFORM_FAILED,
                                  backup_path=backup_path, error=str(e))
        else:
            logger.debug(f"{self.path} already up to date")

        written = self.path.read_bytes().decode(errors="surrogateescape") if self.path.exists() else ""
        missing = missing_markers(written, self.markers)
        error = None
        if not missing and self.validator is not None:
            try:
                self.validator(self.path)
            except ProvisionError as e:
                error = str(e)

        if missing or error:
            logger.error(f"Verification failed for {self.path}; restoring previous contents")
            if changed:
                self._restore(existed, original, stat)
            return EditResult(self.path, EditOutcome.VERIFY_FAILED, backup_path=backup_path,
                              changed=changed, missing=missing, error=error)

        return EditResult(self.path, EditOutcome.SUCCESS, backup_path=backup_path, changed=changed)

    def _restore(self, existed: bool, original: bytes, stat):
        if existed:
            atomic_write_bytes(self.path, original, mode=stat.st_mode & 0o7777,
                               owner=(stat.st_uid, stat.st_gid))
            logger.info(f"Restored {self.path}")
        else:
            self.path.unlink(missing_ok=True)
            logger.info(f"Removed {self.path} (it did not exist before)")


def edit_file(path: Union[str, Path], transform: Transform, **kwargs) -> EditResult:
    """Apply a :class:`TransactionalEdit` in one call."""
    return TransactionalEdit(path, transform, **kwargs).apply()


# ---------------------------------------------------------------------------
# Text helpers shared by the config writers
# ---------------------------------------------------------------------------

def ensure_trailing_newline(text: str) -> str:
    if text and not text.endswith("\n"):
        return text + "\n"
    return text


def append_block(text: str, block: str) -> str:
    """Append ``block`` after exactly one blank separator line."""
    body = text.rstrip("\n")
    if not body.strip():
        return ensure_trailing_newline(block)
    return body + "\n\n" + ensure_trailing_newline(block)


def drop_lines(text: str, predicate: Callable[[str], bool]) -> str:
    """Remove every line for which ``predicate(line)`` is true."""
    kept = [line for line in text.splitlines(keepends=True) if not predicate(line.rstrip("\n"))]
    return "".join(kept)
