"""Tests for provider lookup and the shared provider contract."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from zonectl.models import ConfigError, DomainConfig, ProviderConfigError
from zonectl.providers.base import Capability, normalize_nameservers, parse_credentials
from zonectl.providers.bind import BindProvider
from zonectl.providers.linode import LinodeCredentials
from zonectl.providers.none import NoneRegistrar
from zonectl.providers.registry import create_provider, create_registrar
from zonectl.providers.route53 import Route53DomainsRegistrar


class TestCreateProvider:
    def test_by_type(self, tmp_path):
        creds = {"files": {"TYPE": "bind", "directory": str(tmp_path)}}
        provider = create_provider("files", creds, full_report=True)
        assert isinstance(provider, BindProvider)
        assert provider.name == "files"
        assert provider.full_report is True
        assert provider.has_capability(Capability.CAN_CONCUR)

    def test_missing_entry(self):
        with pytest.raises(ConfigError, match="no entry"):
            create_provider("ghost", {})

    def test_missing_type(self):
        with pytest.raises(ConfigError, match="no TYPE"):
            create_provider("p", {"p": {"token": "x"}})

    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="known: AXFRDDNS, BIND, LINODE, ROUTE53"):
            create_provider("p", {"p": {"TYPE": "CLOUDFLAREAPI"}})


class TestCreateRegistrar:
    def test_none_needs_no_entry(self):
        registrar = create_registrar("none", {})
        assert isinstance(registrar, NoneRegistrar)
        assert registrar.get_registrar_corrections(DomainConfig(name="example.com")) == []

    def test_route53_alias(self):
        with patch("zonectl.providers.route53.boto3") as mock_boto:
            mock_boto.client.return_value = MagicMock()
            registrar = create_registrar("r53", {"r53": {"TYPE": "ROUTE53"}})
        assert isinstance(registrar, Route53DomainsRegistrar)
        assert mock_boto.client.call_args[0][0] == "route53domains"

    def test_dns_only_type_rejected(self):
        with pytest.raises(ConfigError, match="unknown registrar type"):
            create_registrar("files", {"files": {"TYPE": "BIND"}})


class TestParseCredentials:
    def test_reports_all_missing(self):
        with pytest.raises(ProviderConfigError) as excinfo:
            parse_credentials(LinodeCredentials, "linode", {})
        assert excinfo.value.missing == ["token"]

    def test_unknown_keys_warned(self, caplog):
        with caplog.at_level(logging.WARNING, logger="zonectl"):
            settings = parse_credentials(LinodeCredentials, "linode", {"TYPE": "LINODE", "token": "t", "colour": "x"})
        assert settings.token == "t"
        assert "colour" in caplog.text


class TestNameservers:
    def test_normalize(self):
        assert normalize_nameservers(["NS2.example.net.", "ns1.example.net", "ns1.example.net.", " "]) == [
            "ns1.example.net",
            "ns2.example.net",
        ]

    def test_registrar_correction(self):
        calls = []
        dc = DomainConfig(name="example.com", nameservers=["ns2.example.net", "ns1.example.net"])
        corrections = NoneRegistrar("none").nameserver_corrections(dc, ["ns1.old.net"], calls.append)
        assert corrections[0].msg == "Change nameservers from 'ns1.old.net' to 'ns1.example.net,ns2.example.net'"
        corrections[0].fn()
        assert calls == [["ns1.example.net", "ns2.example.net"]]

    def test_registrar_no_change(self):
        dc = DomainConfig(name="example.com", nameservers=["ns1.example.net."])
        assert NoneRegistrar("none").nameserver_corrections(dc, ["NS1.example.net"], print) == []
