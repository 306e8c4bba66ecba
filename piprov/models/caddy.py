"""Caddy site definition."""
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9.-]*[a-zA-Z0-9]\.[a-zA-Z]{2,}$")
UPSTREAM_RE = re.compile(r"^[A-Za-z0-9.\-]+:\d{1,5}$")


class CaddySite(BaseModel):
    """Reverse proxy site served by Caddy."""

    model_config = ConfigDict(extra='forbid')

    domain: Optional[str] = Field(None, description="Public domain; enables automatic HTTPS")
    upstream: str = Field("localhost:3000", description="host:port to proxy to")

    @field_validator('domain')
    @classmethod
    def validate_domain(cls, v):
        if v is None or v == "":
            return None
        if not DOMAIN_RE.match(v):
            raise ValueError(f"Invalid domain format: {v}. Example: mysubdomain.duckdns.org")
        return v

    @field_validator('upstream')
    @classmethod
    def validate_upstream(cls, v):
        if not UPSTREAM_RE.match(v):
            raise ValueError(f"Invalid upstream: {v} (expected host:port, e.g. localhost:3000)")
        return v

    @property
    def use_https(self) -> bool:
        return self.domain is not None

    @property
    def address(self) -> str:
        """Site address line of the Caddyfile."""
        return self.domain if self.domain else ":80"
