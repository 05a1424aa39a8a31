"""Tests for the Route 53 provider and Route 53 Domains registrar."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from zonectl.models import (
    AuthenticationError,
    DomainConfig,
    ProviderError,
    TransientAPIError,
    ZoneNotFoundError,
    new_record,
)
from zonectl.providers.route53 import Route53DomainsRegistrar, Route53Provider

ZONE = "example.com"
CREDS = {"TYPE": "ROUTE53", "KeyId": "AKIA", "SecretKey": "secret"}
HOSTED_ZONES = {"HostedZones": [{"Name": "example.com.", "Id": "/hostedzone/Z1"}], "IsTruncated": False}
WWW_RRSET = {
    "Name": "www.example.com.",
    "Type": "A",
    "TTL": 300,
    "ResourceRecords": [{"Value": "1.1.1.1"}],
}
WILDCARD_RRSET = {
    "Name": "\\052.example.com.",
    "Type": "CNAME",
    "TTL": 300,
    "ResourceRecords": [{"Value": "www.example.com."}],
}


def _client_error(code: str, msg: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": msg}}, "op")


@pytest.fixture
def r53():
    with patch("zonectl.providers.route53.boto3") as mock_boto:
        mock_client = MagicMock()
        mock_boto.client.return_value = mock_client
        instance = Route53Provider("r53", CREDS)
        mock_client.list_hosted_zones.return_value = HOSTED_ZONES
        yield instance, mock_client


@pytest.fixture
def domains():
    with patch("zonectl.providers.route53.boto3") as mock_boto:
        mock_client = MagicMock()
        mock_boto.client.return_value = mock_client
        yield Route53DomainsRegistrar("r53", CREDS), mock_client


def _with_rrsets(client, *rrsets):
    client.list_resource_record_sets.return_value = {"ResourceRecordSets": list(rrsets), "IsTruncated": False}


# --- zones ---

class TestZones:
    def test_client_settings(self):
        with patch("zonectl.providers.route53.boto3") as mock_boto:
            Route53Provider("r53", CREDS)
        mock_boto.client.assert_called_once_with(
            "route53",
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            aws_session_token=None,
            region_name="us-east-1",
        )

    def test_list_zones(self, r53):
        inst, _ = r53
        assert inst.list_zones() == ["example.com"]

    def test_list_zones_paginates(self, r53):
        inst, client = r53
        client.list_hosted_zones.side_effect = [
            {"HostedZones": [{"Name": "a.com.", "Id": "/hostedzone/A"}], "IsTruncated": True, "NextMarker": "m"},
            {"HostedZones": [{"Name": "b.com.", "Id": "/hostedzone/B"}], "IsTruncated": False},
        ]
        assert inst.list_zones() == ["a.com", "b.com"]
        assert client.list_hosted_zones.call_args_list[1][1] == {"Marker": "m"}

    def test_ensure_zone_creates(self, r53):
        inst, client = r53
        client.create_hosted_zone.return_value = {"HostedZone": {"Id": "/hostedzone/Z2"}}
        inst.ensure_zone_exists("new.org")
        kwargs = client.create_hosted_zone.call_args[1]
        assert kwargs["Name"] == "new.org"
        assert "DelegationSetId" not in kwargs
        assert inst._zone_id("new.org") == "Z2"

    def test_ensure_zone_existing(self, r53):
        inst, client = r53
        inst.ensure_zone_exists(ZONE)
        client.create_hosted_zone.assert_not_called()

    def test_ensure_zone_uses_delegation_set(self):
        with patch("zonectl.providers.route53.boto3") as mock_boto:
            client = MagicMock()
            mock_boto.client.return_value = client
            client.list_hosted_zones.return_value = {"HostedZones": [], "IsTruncated": False}
            client.create_hosted_zone.return_value = {"HostedZone": {"Id": "/hostedzone/Z9"}}
            inst = Route53Provider("r53", {**CREDS, "DelegationSet": "N123"})
            inst.ensure_zone_exists("new.org")
        assert client.create_hosted_zone.call_args[1]["DelegationSetId"] == "N123"

    def test_nameservers(self, r53):
        inst, client = r53
        client.get_hosted_zone.return_value = {"DelegationSet": {"NameServers": ["ns-1.awsdns-01.org."]}}
        assert inst.get_nameservers(ZONE) == ["ns-1.awsdns-01.org"]
        client.get_hosted_zone.assert_called_once_with(Id="Z1")

    def test_nameservers_of_missing_zone(self, r53):
        inst, client = r53
        assert inst.get_nameservers("new.org") == []
        client.get_hosted_zone.assert_not_called()

    def test_access_denied(self, r53):
        inst, client = r53
        client.list_hosted_zones.side_effect = _client_error("AccessDenied", "not allowed")
        with pytest.raises(AuthenticationError, match="not allowed"):
            inst.list_zones()

    def test_generic_error(self, r53):
        inst, client = r53
        client.list_hosted_zones.side_effect = _client_error("Weird")
        with pytest.raises(ProviderError, match="Failed to list zones"):
            inst.list_zones()

    def test_missing_credentials(self, r53):
        inst, client = r53
        client.list_hosted_zones.side_effect = NoCredentialsError()
        with pytest.raises(AuthenticationError, match="Failed to list zones"):
            inst.list_zones()

    def test_connection_failure_is_transient(self, r53):
        inst, client = r53
        client.list_hosted_zones.side_effect = EndpointConnectionError(endpoint_url="https://route53.amazonaws.com")
        with patch("zonectl.retry.time.sleep"), pytest.raises(TransientAPIError, match="Failed to list zones"):
            inst.list_zones()
        assert client.list_hosted_zones.call_count == 3


# --- records ---

class TestRecords:
    def test_skips_soa_apex_ns_and_alias(self, r53):
        inst, client = r53
        _with_rrsets(
            client,
            {"Name": "example.com.", "Type": "SOA", "TTL": 900, "ResourceRecords": [{"Value": "ns. h. 1 2 3 4 5"}]},
            {"Name": "example.com.", "Type": "NS", "TTL": 172800, "ResourceRecords": [{"Value": "ns-1.awsdns."}]},
            {"Name": "api.example.com.", "Type": "A", "AliasTarget": {"DNSName": "lb.aws."}},
            WWW_RRSET,
            WILDCARD_RRSET,
        )
        records = inst.get_zone_records(ZONE)
        assert [r.describe() for r in records] == ["www A 1.1.1.1", "* CNAME www.example.com."]
        assert records[0].original is WWW_RRSET

    def test_paginates(self, r53):
        inst, client = r53
        client.list_resource_record_sets.side_effect = [
            {"ResourceRecordSets": [WWW_RRSET], "IsTruncated": True, "NextRecordName": "x", "NextRecordType": "A"},
            {"ResourceRecordSets": [WILDCARD_RRSET], "IsTruncated": False},
        ]
        assert len(inst.get_zone_records(ZONE)) == 2
        assert client.list_resource_record_sets.call_args_list[1][1] == {
            "HostedZoneId": "Z1",
            "StartRecordName": "x",
            "StartRecordType": "A",
        }

    def test_missing_zone(self, r53):
        inst, _ = r53
        with pytest.raises(ZoneNotFoundError):
            inst.get_zone_records("nope.org")


# --- corrections ---

class TestCorrections:
    def test_upsert_whole_set(self, r53):
        inst, client = r53
        _with_rrsets(client, WWW_RRSET)
        existing = inst.get_zone_records(ZONE)
        dc = DomainConfig(
            name=ZONE,
            records=[new_record("www", "A", "1.1.1.1", ZONE, ttl=300), new_record("www", "A", "2.2.2.2", ZONE, ttl=300)],
        )
        corrections = inst.get_zone_records_corrections(dc, existing)
        assert len(corrections) == 1
        assert "+ CREATE www A 2.2.2.2 ttl=300" in corrections[0].msg

        corrections[0].fn()
        client.change_resource_record_sets.assert_called_once_with(
            HostedZoneId="Z1",
            ChangeBatch={
                "Changes": [
                    {
                        "Action": "UPSERT",
                        "ResourceRecordSet": {
                            "Name": "www.example.com.",
                            "Type": "A",
                            "TTL": 300,
                            "ResourceRecords": [{"Value": "1.1.1.1"}, {"Value": "2.2.2.2"}],
                        },
                    }
                ]
            },
        )

    def test_delete_sends_original(self, r53):
        inst, client = r53
        _with_rrsets(client, WILDCARD_RRSET)
        existing = inst.get_zone_records(ZONE)
        corrections = inst.get_zone_records_corrections(DomainConfig(name=ZONE), existing)
        corrections[0].fn()
        batch = client.change_resource_record_sets.call_args[1]["ChangeBatch"]
        assert batch["Changes"][0] == {"Action": "DELETE", "ResourceRecordSet": WILDCARD_RRSET}

    def test_apex_ns_left_alone(self, r53):
        inst, client = r53
        _with_rrsets(client)
        dc = DomainConfig(name=ZONE, records=[new_record("@", "NS", "ns-1.awsdns-01.org.", ZONE, ttl=172800)])
        assert inst.get_zone_records_corrections(dc, []) == []

    def test_zone_created_during_push_is_resolved_late(self):
        with patch("zonectl.providers.route53.boto3") as mock_boto:
            client = MagicMock()
            mock_boto.client.return_value = client
            client.list_hosted_zones.return_value = {"HostedZones": [], "IsTruncated": False}
            inst = Route53Provider("r53", CREDS)
            dc = DomainConfig(name="new.org", records=[new_record("www", "A", "1.1.1.1", "new.org", ttl=300)])
            corrections = inst.get_zone_records_corrections(dc, [])
            client.create_hosted_zone.return_value = {"HostedZone": {"Id": "/hostedzone/Z7"}}
            inst.ensure_zone_exists("new.org")
            corrections[0].fn()
        assert client.change_resource_record_sets.call_args[1]["HostedZoneId"] == "Z7"


# --- registrar ---

class TestRoute53Domains:
    def test_nameservers_changed(self, domains):
        reg, client = domains
        client.get_domain_detail.return_value = {"Nameservers": [{"Name": "ns1.old.net"}]}
        dc = DomainConfig(name=ZONE, nameservers=["ns1.new.net"])
        corrections = reg.get_registrar_corrections(dc)
        assert [c.msg for c in corrections] == ["Change nameservers from 'ns1.old.net' to 'ns1.new.net'"]
        corrections[0].fn()
        client.update_domain_nameservers.assert_called_once_with(
            DomainName=ZONE, Nameservers=[{"Name": "ns1.new.net"}]
        )

    def test_nameservers_match(self, domains):
        reg, client = domains
        client.get_domain_detail.return_value = {"Nameservers": [{"Name": "NS1.new.net."}]}
        assert reg.get_registrar_corrections(DomainConfig(name=ZONE, nameservers=["ns1.new.net"])) == []

    def test_unknown_domain(self, domains):
        reg, client = domains
        client.get_domain_detail.side_effect = _client_error("InvalidInput", "no such domain")
        with pytest.raises(ProviderError, match="no such domain"):
            reg.get_registrar_corrections(DomainConfig(name=ZONE))
