"""Static IP request model for dhcpcd configuration."""
import ipaddress
import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PUBLIC_DNS = "8.8.8.8"
CIDR_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}/\d{1,2}$")


def _check_interface(value: str, label: str) -> str:
    value = value.strip()
    if not CIDR_RE.match(value):
        raise ValueError(
            f"Invalid {label} IP address format: {value} (expected format: 192.168.0.10/24)"
        )
    try:
        ipaddress.IPv4Interface(value)
    except ValueError as e:
        raise ValueError(f"Invalid {label} IP address: {value} ({e})")
    return value


def _check_address(value: str, label: str) -> str:
    value = value.strip()
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        raise ValueError(f"Invalid {label} IP address format: {value}")
    return value


class StaticIPRequest(BaseModel):
    """Validated input for a static IP configuration.

    Addresses are kept as the strings written into dhcpcd.conf.
    """

    model_config = ConfigDict(extra='forbid')

    wifi_ip: str = Field(..., description="WiFi address with prefix, e.g. 192.168.0.10/24")
    gateway: str = Field(..., description="Router address")
    dns_servers: List[str] = Field(default_factory=list)
    ports: List[int] = Field(default_factory=list, description="TCP ports to forward via UPnP")
    ethernet_ip: Optional[str] = Field(None, description="Ethernet address with prefix")

    @field_validator('wifi_ip')
    @classmethod
    def validate_wifi_ip(cls, v):
        return _check_interface(v, "WiFi")

    @field_validator('ethernet_ip')
    @classmethod
    def validate_ethernet_ip(cls, v):
        if v is None:
            return v
        return _check_interface(v, "Ethernet")

    @field_validator('gateway')
    @classmethod
    def validate_gateway(cls, v):
        return _check_address(v, "gateway")

    @field_validator('dns_servers')
    @classmethod
    def validate_dns(cls, v):
        return [_check_address(server, "DNS server") for server in v]

    @field_validator('ports')
    @classmethod
    def validate_ports(cls, v):
        for port in v:
            if not 1 <= port <= 65535:
                raise ValueError(f"Invalid port number: {port} (must be 1-65535)")
        return v

    @model_validator(mode='after')
    def default_dns(self) -> 'StaticIPRequest':
        if not self.dns_servers:
            self.dns_servers = [self.gateway, DEFAULT_PUBLIC_DNS]
        return self

    @property
    def wifi_address(self) -> str:
        """WiFi address without the prefix length."""
        return self.wifi_ip.split("/", 1)[0]

    @property
    def ethernet_enabled(self) -> bool:
        return self.ethernet_ip is not None


def classify_extra_args(extras: List[str]):
    """Sort the optional positional arguments of ``static-ip``.

    The first value containing a dotted quad is the DNS list, the first
    comma-separated list of numbers is the port list.

    Returns:
        Tuple of (dns_servers, ports)

    Raises:
        ValueError: For an argument that is neither
    """
    dns: List[str] = []
    ports: List[int] = []
    dns_seen = ports_seen = False
    for arg in extras:
        if re.search(r"\d+\.\d+\.\d+\.\d+", arg) and not dns_seen:
            dns = arg.split()
            dns_seen = True
        elif re.match(r"^[0-9,]+$", arg) and not ports_seen:
            ports = [int(p) for p in arg.split(",") if p.strip()]
            ports_seen = True
        else:
            raise ValueError(f"Unknown argument: {arg}")
    return dns, ports
