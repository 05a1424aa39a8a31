"""AWS Route 53 hosted zones and Route 53 Domains registration."""

from __future__ import annotations

import logging
import uuid
from typing import Any, NoReturn

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, PartialCredentialsError
from pydantic import Field

from ..diffing import ChangeType
from ..models import (
    AuthenticationError,
    Correction,
    DomainConfig,
    ProviderError,
    RateLimitedError,
    Record,
    TransientAPIError,
    ZoneNotFoundError,
    label_for_fqdn,
)
from ..rdata import parse_rdata
from ..retry import api_call
from .base import Capability, DNSProvider, Granularity, ProviderCredentials, Registrar, correction_for, parse_credentials

LOG = logging.getLogger("zonectl")

_ERROR_MAP: dict[str, type[ProviderError]] = {
    "NoSuchHostedZone": ZoneNotFoundError,
    "Throttling": RateLimitedError,
    "ThrottlingException": RateLimitedError,
    "PriorRequestNotComplete": RateLimitedError,
    "AccessDenied": AuthenticationError,
    "AccessDeniedException": AuthenticationError,
    "InvalidClientTokenId": AuthenticationError,
    "SignatureDoesNotMatch": AuthenticationError,
    "UnrecognizedClientException": AuthenticationError,
    "ServiceUnavailable": TransientAPIError,
    "InternalFailure": TransientAPIError,
}


def _handle(e: ClientError, msg: str) -> NoReturn:
    exc = _ERROR_MAP.get(e.response["Error"]["Code"])
    raise (exc or ProviderError)(f"{msg}: {e.response['Error'].get('Message', '')}") from e


def _unescape(name: str) -> str:
    """Route 53 returns ``*`` and some punctuation as octal escapes."""
    return name.replace("\\052", "*").replace("\\100", "@").rstrip(".").lower()


class Route53Credentials(ProviderCredentials):
    key_id: str = Field(default="", alias="KeyId")
    secret_key: str = Field(default="", alias="SecretKey")
    token: str = Field(default="", alias="Token")
    delegation_set: str = Field(default="", alias="DelegationSet")
    region: str = Field(default="us-east-1", alias="Region")


def _client(service: str, settings: Route53Credentials) -> Any:
    return boto3.client(
        service,
        aws_access_key_id=settings.key_id or None,
        aws_secret_access_key=settings.secret_key or None,
        aws_session_token=settings.token or None,
        region_name=settings.region,
    )


class _Route53Calls:
    """Shared wrapper turning botocore failures into zonectl errors."""

    client: Any

    @api_call
    def _call(self, operation: str, msg: str, **kwargs: Any) -> Any:
        try:
            return getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            _handle(e, msg)
        except (NoCredentialsError, PartialCredentialsError) as e:
            raise AuthenticationError(f"{msg}: {e}") from e
        except BotoCoreError as e:
            raise TransientAPIError(f"{msg}: {e}") from e


class Route53Provider(_Route53Calls, DNSProvider):
    """Whole RRsets are replaced with UPSERT or DELETE change batches."""

    TYPE_NAME = "ROUTE53"
    CAPABILITIES = frozenset(
        {
            Capability.CAN_GET_ZONES,
            Capability.CAN_USE_CAA,
            Capability.CAN_USE_HTTPS,
            Capability.CAN_USE_NAPTR,
            Capability.CAN_USE_PTR,
            Capability.CAN_USE_SRV,
            Capability.CAN_USE_SSHFP,
            Capability.CAN_USE_SVCB,
            Capability.CAN_USE_TLSA,
            Capability.DOC_CREATE_DOMAINS,
            Capability.DOC_DUAL_HOST,
            Capability.DOC_OFFICIALLY_SUPPORTED,
        }
    )
    GRANULARITY = Granularity.RECORD_SET

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        super().__init__(name, creds)
        settings = parse_credentials(Route53Credentials, name, self.creds)
        self.delegation_set = settings.delegation_set
        self.client = _client("route53", settings)
        self._zones: dict[str, str] | None = None

    # --- zones ---

    def _zone_index(self) -> dict[str, str]:
        if self._zones is None:
            zones: dict[str, str] = {}
            kwargs: dict[str, Any] = {}
            while True:
                resp = self._call("list_hosted_zones", "Failed to list zones", **kwargs)
                for zone in resp.get("HostedZones", []):
                    zones[zone["Name"].rstrip(".").lower()] = zone["Id"].split("/")[-1]
                if not resp.get("IsTruncated"):
                    break
                kwargs = {"Marker": resp["NextMarker"]}
            self._zones = zones
        return self._zones

    def _zone_id(self, zone: str) -> str:
        try:
            return self._zone_index()[zone]
        except KeyError:
            raise ZoneNotFoundError(f"Zone {zone} not found in Route 53") from None

    def list_zones(self) -> list[str]:
        self._zones = None
        return sorted(self._zone_index())

    def ensure_zone_exists(self, zone: str) -> None:
        if zone in self._zone_index():
            return
        kwargs: dict[str, Any] = {"Name": zone, "CallerReference": uuid.uuid4().hex}
        if self.delegation_set:
            kwargs["DelegationSetId"] = self.delegation_set
        LOG.info("Creating hosted zone %s", zone)
        resp = self._call("create_hosted_zone", f"Failed to create zone '{zone}'", **kwargs)
        self._zone_index()[zone] = resp["HostedZone"]["Id"].split("/")[-1]

    def get_nameservers(self, zone: str) -> list[str]:
        zone_id = self._zone_index().get(zone)
        if zone_id is None:
            return []
        resp = self._call("get_hosted_zone", f"Failed to read zone '{zone}'", Id=zone_id)
        return [ns.rstrip(".") for ns in resp.get("DelegationSet", {}).get("NameServers", [])]

    # --- records ---

    def _rrsets(self, zone_id: str) -> list[dict[str, Any]]:
        rrsets: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"HostedZoneId": zone_id}
        while True:
            resp = self._call("list_resource_record_sets", f"Failed to list records in zone '{zone_id}'", **kwargs)
            rrsets.extend(resp.get("ResourceRecordSets", []))
            if not resp.get("IsTruncated"):
                return rrsets
            kwargs = {
                "HostedZoneId": zone_id,
                "StartRecordName": resp["NextRecordName"],
                "StartRecordType": resp["NextRecordType"],
            }

    def get_zone_records(self, zone: str, meta: dict[str, str] | None = None) -> list[Record]:
        records: list[Record] = []
        for rrset in self._rrsets(self._zone_id(zone)):
            name = _unescape(rrset["Name"])
            rtype = rrset["Type"]
            if "AliasTarget" in rrset:
                LOG.debug("skipping Route 53 alias %s %s", name, rtype)
                continue
            if rtype == "SOA" or (rtype == "NS" and name == zone):
                continue
            for value in rrset.get("ResourceRecords", []):
                record = Record(
                    label="@",
                    type=rtype,
                    rdata=parse_rdata(rtype, value["Value"]).with_origin(zone),
                    ttl=rrset.get("TTL", 0),
                    original=rrset,
                )
                record.set_label(label_for_fqdn(name, zone), zone)
                records.append(record)
        return records

    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[Record]) -> list[Correction]:
        work = dc.copy()
        work.records = [r for r in dc.records if r.type != "SOA" and not (r.type == "NS" and r.label == "@")]
        corrections, changes = self.plan(work, existing)
        for change in changes:
            if change.type == ChangeType.DELETE:
                rrset = change.old[0].original or _rrset(change.old)
                action = "DELETE"
            else:
                rrset = _rrset(change.new)
                action = "UPSERT"
            batch = {"Changes": [{"Action": action, "ResourceRecordSet": rrset}]}
            corrections.append(
                correction_for(
                    change,
                    lambda batch=batch, key=change.key: self._call(
                        "change_resource_record_sets",
                        f"Failed to change {key} in zone '{dc.name}'",
                        HostedZoneId=self._zone_id(dc.name),
                        ChangeBatch=batch,
                    ),
                )
            )
        return corrections


def _rrset(records: list[Record]) -> dict[str, Any]:
    first = records[0]
    return {
        "Name": f"{first.name_fqdn}.",
        "Type": first.type,
        "TTL": first.ttl,
        "ResourceRecords": [{"Value": record.rdata.to_text()} for record in records],
    }


class Route53DomainsRegistrar(_Route53Calls, Registrar):
    """Delegation managed through Route 53 Domains."""

    TYPE_NAME = "ROUTE53DOMAINS"

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        super().__init__(name, creds)
        settings = parse_credentials(Route53Credentials, name, self.creds)
        self.client = _client("route53domains", settings)

    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        detail = self._call("get_domain_detail", f"Failed to read domain '{dc.name}'", DomainName=dc.name)
        current = [ns["Name"] for ns in detail.get("Nameservers", [])]
        return self.nameserver_corrections(dc, current, lambda names: self._update(dc.name, names))

    def _update(self, domain: str, names: list[str]) -> None:
        self._call(
            "update_domain_nameservers",
            f"Failed to update nameservers of '{domain}'",
            DomainName=domain,
            Nameservers=[{"Name": name} for name in names],
        )
