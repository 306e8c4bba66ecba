"""piprov runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProvisionConfig:
    """Runtime configuration for provisioning commands.

    Attributes:
        apt_lock_timeout: Seconds to wait for another apt/dpkg process (default: 300)
        apt_lock_poll_interval: Seconds between apt lock checks (default: 5)
        service_start_wait: Seconds to wait after restarting a service (default: 2)
        download_timeout: Timeout in seconds for HTTP downloads (default: 60)
        source_build_timeout: Timeout in seconds for building Node.js from source (default: 3600)
        command_timeout: Default timeout in seconds for external commands (default: 600)
    """

    # apt/dpkg lock polling
    apt_lock_timeout: int = 300
    apt_lock_poll_interval: float = 5.0

    # systemd
    service_start_wait: float = 2.0

    # Network and long-running commands
    download_timeout: int = 60
    source_build_timeout: int = 3600  # source builds on a Pi take 10-30 minutes
    command_timeout: int = 600

    @classmethod
    def from_env(cls) -> "ProvisionConfig":
        """Create config from environment variables.

        Environment variables:
            PIPROV_APT_LOCK_TIMEOUT: apt lock wait timeout in seconds
            PIPROV_APT_LOCK_POLL_INTERVAL: apt lock poll interval in seconds
            PIPROV_SERVICE_START_WAIT: Service start wait in seconds
            PIPROV_DOWNLOAD_TIMEOUT: HTTP download timeout in seconds
            PIPROV_SOURCE_BUILD_TIMEOUT: Node.js source build timeout in seconds
            PIPROV_COMMAND_TIMEOUT: Default external command timeout in seconds

        Returns:
            ProvisionConfig instance with values from environment or defaults
        """
        return cls(
            apt_lock_timeout=int(
                os.getenv("PIPROV_APT_LOCK_TIMEOUT", cls.apt_lock_timeout)
            ),
            apt_lock_poll_interval=float(
                os.getenv("PIPROV_APT_LOCK_POLL_INTERVAL", cls.apt_lock_poll_interval)
            ),
            service_start_wait=float(
                os.getenv("PIPROV_SERVICE_START_WAIT", cls.service_start_wait)
            ),
            download_timeout=int(
                os.getenv("PIPROV_DOWNLOAD_TIMEOUT", cls.download_timeout)
            ),
            source_build_timeout=int(
                os.getenv("PIPROV_SOURCE_BUILD_TIMEOUT", cls.source_build_timeout)
            ),
            command_timeout=int(
                os.getenv("PIPROV_COMMAND_TIMEOUT", cls.command_timeout)
            ),
        )


# Global config instance (can be overridden)
_config: Optional[ProvisionConfig] = None


def get_config() -> ProvisionConfig:
    """Get the global piprov configuration.

    Returns:
        ProvisionConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = ProvisionConfig.from_env()
    return _config


def set_config(config: Optional[ProvisionConfig]):
    """Set the global piprov configuration.

    Args:
        config: ProvisionConfig instance to use globally (None resets to environment)
    """
    global _config
    _config = config
