"""Tests for request models."""
import pytest
from pydantic import ValidationError

from piprov.models import CaddySite, RunnerRequest, StaticIPRequest, classify_extra_args


class TestCaddySite:
    """Test Caddy site validation."""

    def test_http_only(self):
        site = CaddySite()
        assert not site.use_https
        assert site.address == ":80"
        assert site.upstream == "localhost:3000"

    def test_domain(self):
        site = CaddySite(domain="mysubdomain.duckdns.org")
        assert site.use_https
        assert site.address == "mysubdomain.duckdns.org"

    def test_empty_domain_means_http(self):
        assert CaddySite(domain="").domain is None

    @pytest.mark.parametrize("domain", ["localhost", "bad_domain.org", "-start.example.com", "a.b.c"])
    def test_invalid_domain(self, domain):
        with pytest.raises(ValidationError, match="Invalid domain format"):
            CaddySite(domain=domain)

    def test_invalid_upstream(self):
        with pytest.raises(ValidationError, match="Invalid upstream"):
            CaddySite(upstream="http://localhost:3000")

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            CaddySite(port=80)


class TestStaticIPRequest:
    """Test static IP input validation."""

    def test_default_dns(self):
        request = StaticIPRequest(wifi_ip="192.168.0.10/24", gateway="192.168.0.1")
        assert request.dns_servers == ["192.168.0.1", "8.8.8.8"]
        assert request.wifi_address == "192.168.0.10"
        assert not request.ethernet_enabled

    def test_missing_prefix(self):
        with pytest.raises(ValidationError, match="expected format: 192.168.0.10/24"):
            StaticIPRequest(wifi_ip="192.168.0.10", gateway="192.168.0.1")

    def test_octet_out_of_range(self):
        with pytest.raises(ValidationError, match="Invalid WiFi IP address"):
            StaticIPRequest(wifi_ip="192.168.0.300/24", gateway="192.168.0.1")

    def test_invalid_gateway(self):
        with pytest.raises(ValidationError, match="Invalid gateway"):
            StaticIPRequest(wifi_ip="192.168.0.10/24", gateway="router")

    def test_invalid_dns(self):
        with pytest.raises(ValidationError, match="Invalid DNS server"):
            StaticIPRequest(wifi_ip="192.168.0.10/24", gateway="192.168.0.1", dns_servers=["1.1.1"])

    def test_invalid_ethernet(self):
        with pytest.raises(ValidationError, match="Invalid Ethernet IP"):
            StaticIPRequest(wifi_ip="192.168.0.10/24", gateway="192.168.0.1", ethernet_ip="eth0")

    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_range(self, port):
        with pytest.raises(ValidationError, match="Invalid port number"):
            StaticIPRequest(wifi_ip="192.168.0.10/24", gateway="192.168.0.1", ports=[port])


class TestClassifyExtraArgs:
    """Test sorting the optional static-ip arguments."""

    def test_dns_and_ports(self):
        assert classify_extra_args(["192.168.0.1 8.8.8.8", "80,443,3000"]) == (
            ["192.168.0.1", "8.8.8.8"], [80, 443, 3000])

    def test_ports_only(self):
        assert classify_extra_args(["22"]) == ([], [22])

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown argument: eth0"):
            classify_extra_args(["eth0"])

    def test_second_dns_list_rejected(self):
        with pytest.raises(ValueError):
            classify_extra_args(["1.1.1.1", "8.8.8.8"])


class TestRunnerRequest:
    """Test runner registration input."""

    def test_labels_split(self):
        request = RunnerRequest(org_name="my-org", token="AABBCC", labels="deployment, development,")
        assert request.labels == ["deployment", "development"]
        assert request.labels_arg == "deployment,development"
        assert request.url == "https://github.com/my-org"

    def test_invalid_org(self):
        with pytest.raises(ValidationError, match="Invalid GitHub organisation name"):
            RunnerRequest(org_name="my org", token="AABBCC", labels="x")

    def test_token_with_space(self):
        with pytest.raises(ValidationError, match="without whitespace"):
            RunnerRequest(org_name="my-org", token="AA BB", labels="x")

    def test_labels_required(self):
        with pytest.raises(ValidationError, match="At least one runner label"):
            RunnerRequest(org_name="my-org", token="AABBCC", labels=" , ")
