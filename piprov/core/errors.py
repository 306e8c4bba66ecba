"""Exception hierarchy for provisioning failures."""
from typing import List, Optional


class ProvisionError(Exception):
    """Base class for every failure that should stop a provisioning run."""
    pass


class InputError(ProvisionError):
    """Raised when command arguments are malformed."""
    pass


class PrerequisiteError(ProvisionError):
    """Raised when a required tool, permission, or file is missing."""
    pass


class VerificationError(ProvisionError):
    """Raised when a post-condition check fails after a change."""
    pass


class CommandError(ProvisionError):
    """Raised when a required external command exits non-zero."""

    def __init__(self, argv: List[str], returncode: int, stderr: Optional[str] = None):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class AptLockTimeout(ProvisionError):
    """Raised when the apt/dpkg lock stays held past the configured timeout."""
    pass
