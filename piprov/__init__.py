"""piprov - provisioning commands for Raspberry Pi and Ubuntu hosts."""

__version__ = "0.1.0"
