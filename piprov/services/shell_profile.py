"""Loading nvm from the user's shell profile files."""
import os
import re
from pathlib import Path
from typing import List, Optional, Tuple

from piprov.core.file_edit import append_block, edit_file
from piprov.core.logger import get_logger

logger = get_logger(__name__)

NVM_SNIPPET = """\
# NVM configuration - Added by piprov
export NVM_DIR="$HOME/.nvm"
[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"  # This loads nvm
[ -s "$NVM_DIR/bash_completion" ] && \\. "$NVM_DIR/bash_completion"  # This loads nvm bash_completion
"""

SOURCE_BASHRC_SNIPPET = """\
# Source .bashrc if it exists
if [ -f ~/.bashrc ]; then
    . ~/.bashrc
fi
"""

# .bashrc is created when missing. The login-shell files are only edited
# when present: creating ~/.bash_profile would stop bash reading ~/.profile.
PROFILE_FILES = [".bashrc", ".bash_profile", ".zshrc", ".profile"]
LOGIN_FILES = (".bash_profile", ".profile")

_NVM_CONFIGURED_RE = re.compile(r"NVM_DIR|nvm\.sh")
_SOURCES_BASHRC_RE = re.compile(r"\.bashrc")


def is_nvm_configured(text: str) -> bool:
    return bool(_NVM_CONFIGURED_RE.search(text))


def add_nvm_loader(text: str, source_bashrc: bool = False) -> str:
    """Return profile text that loads nvm (unchanged if it already does)."""
    if source_bashrc and not _SOURCES_BASHRC_RE.search(text):
        text = append_block(text, SOURCE_BASHRC_SNIPPET)
    if not is_nvm_configured(text):
        text = append_block(text, NVM_SNIPPET)
    return text


def configure_profiles(home: Path, owner: Optional[Tuple[int, int]] = None,
                       mock: Optional[bool] = None) -> List[Path]:
    """Make every relevant profile under ``home`` load nvm.

    Args:
        home: Home directory of the user
        owner: (uid, gid) for files created on that user's behalf
        mock: Only report what would change

    Returns:
        Profile files that load nvm afterwards
    """
    home = Path(home)
    bashrc = home / ".bashrc"
    configured = []
    for name in PROFILE_FILES:
        path = home / name
        if name != ".bashrc" and not path.exists():
            continue
        existed = path.exists()
        source_bashrc = name in LOGIN_FILES and bashrc.exists()
        result = edit_file(
            path,
            lambda text, source_bashrc=source_bashrc: add_nvm_loader(text, source_bashrc),
            markers=[_NVM_CONFIGURED_RE],
            backup=False,
            mock=mock,
        )
        if not result.ok:
            logger.warning(f"Failed to configure ~/{name}: {result.error or 'NVM_DIR not found after write'}")
            continue
        if result.changed:
            logger.info(f"✓ NVM configured in ~/{name}")
            if not existed and owner is not None and path.exists():
                os.chown(path, *owner)
        else:
            logger.info(f"NVM already configured in ~/{name}")
        configured.append(path)

    if not configured:
        logger.error("NVM configuration was not found in any profile file. Add manually:\n" + NVM_SNIPPET)
    return configured
