"""HTTP downloads for installer scripts, signing keys and release tarballs."""
from pathlib import Path
from typing import Optional

import requests

from piprov.core.config import get_config
from piprov.core.errors import PrerequisiteError
from piprov.core.logger import get_logger
from piprov.core.retry import retry

logger = get_logger(__name__)


@retry(max_attempts=3, delay=2.0, exceptions=(requests.RequestException,))
def _get(url: str, stream: bool = False, timeout: Optional[int] = None) -> requests.Response:
    response = requests.get(url, stream=stream, timeout=timeout or get_config().download_timeout)
    response.raise_for_status()
    return response


def fetch_text(url: str) -> str:
    """Download a small text document (GPG key, apt source list, install script).

    Raises:
        PrerequisiteError: If the download keeps failing
    """
    logger.debug(f"Downloading {url}")
    try:
        return _get(url).text
    except requests.RequestException as e:
        raise PrerequisiteError(f"Failed to download {url}: {e}")


def download_file(url: str, dest: Path, chunk_size: int = 1 << 16) -> Path:
    """Stream ``url`` to ``dest`` (written to ``dest.part`` first).

    Raises:
        PrerequisiteError: If the download keeps failing or cannot be written
    """
    dest = Path(dest)
    partial = dest.with_name(dest.name + ".part")
    logger.info(f"Downloading {url}...")
    try:
        with _get(url, stream=True) as response:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        partial.unlink(missing_ok=True)
        raise PrerequisiteError(f"Failed to download {url}: {e}")
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise PrerequisiteError(f"Could not save {url} to {dest}: {e}")
    partial.replace(dest)
    logger.info(f"✓ Downloaded {dest.name}")
    return dest
