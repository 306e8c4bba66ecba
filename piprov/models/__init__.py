"""Data models for piprov."""
from piprov.models.caddy import CaddySite
from piprov.models.network import StaticIPRequest, classify_extra_args
from piprov.models.runner import RunnerRequest

__all__ = [
    'CaddySite',
    'RunnerRequest',
    'StaticIPRequest',
    'classify_extra_args',
]
