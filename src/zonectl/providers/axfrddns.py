"""Any RFC 2136 server: read with AXFR, write with dynamic updates."""

from __future__ import annotations

import logging

from pydantic import Field

from ..axfr import DNSSEC_TYPES, fetch_zone_records, send_update
from ..config import TsigKey, parse_bool, parse_keyfile, parse_tsig_spec
from ..models import ConfigError, Correction, DomainConfig, ProviderConfigError, Record
from ..ordering import UpdateOp, rfc2136_operations, split_buggy_cname
from .base import Capability, DNSProvider, Granularity, ProviderCredentials, parse_credentials

LOG = logging.getLogger("zonectl")

DEFAULT_PORT = 53


class AxfrDdnsCredentials(ProviderCredentials):
    master: str = ""
    nameservers: str = ""
    transfer_server: str = Field(default="", alias="transfer-server")
    update_key: str = Field(default="", alias="update-key")
    transfer_key: str = Field(default="", alias="transfer-key")
    update_keyfile_b64: str = Field(default="", alias="update-keyfile-b64")
    transfer_keyfile_b64: str = Field(default="", alias="transfer-keyfile-b64")
    buggy_cname: str = Field(default="no", alias="buggy-cname")
    no_last_ns: str = Field(default="no", alias="no-last-ns")
    timeout: float = 10.0


def _host_port(value: str) -> tuple[str, int]:
    """Split ``host[:port]``; IPv6 literals may be written ``[addr]:port``."""
    value = value.strip()
    if value.startswith("["):
        host, _, rest = value[1:].partition("]")
        port = rest.lstrip(":")
    elif value.count(":") == 1:
        host, port = value.split(":")
    else:
        host, port = value, ""
    try:
        return host, int(port) if port else DEFAULT_PORT
    except ValueError:
        raise ConfigError(f"invalid port in server address {value!r}") from None


def _key(spec: str, keyfile: str) -> TsigKey | None:
    if keyfile:
        return parse_keyfile(keyfile)
    if spec:
        return parse_tsig_spec(spec)
    return None


class AxfrDdnsProvider(DNSProvider):
    """Dynamic DNS against a primary server."""

    TYPE_NAME = "AXFRDDNS"
    CAPABILITIES = frozenset(
        {
            Capability.CAN_AUTO_DNSSEC,
            Capability.CAN_CONCUR,
            Capability.CAN_USE_CAA,
            Capability.CAN_USE_DS,
            Capability.CAN_USE_HTTPS,
            Capability.CAN_USE_LOC,
            Capability.CAN_USE_NAPTR,
            Capability.CAN_USE_PTR,
            Capability.CAN_USE_SRV,
            Capability.CAN_USE_SSHFP,
            Capability.CAN_USE_SVCB,
            Capability.CAN_USE_TLSA,
        }
    )
    GRANULARITY = Granularity.RECORD

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        super().__init__(name, creds)
        settings = parse_credentials(AxfrDdnsCredentials, name, self.creds)
        self.nameservers = [ns.strip() for ns in settings.nameservers.split(",") if ns.strip()]
        master = settings.master or (self.nameservers[0] if self.nameservers else "")
        if not master:
            raise ProviderConfigError(name, ["master"])
        self.master, self.port = _host_port(master)
        if settings.transfer_server:
            self.transfer_host, self.transfer_port = _host_port(settings.transfer_server)
        else:
            self.transfer_host, self.transfer_port = self.master, self.port
        self.update_key = _key(settings.update_key, settings.update_keyfile_b64)
        self.transfer_key = _key(settings.transfer_key, settings.transfer_keyfile_b64)
        self.buggy_cname = parse_bool(settings.buggy_cname)
        self.no_last_ns = parse_bool(settings.no_last_ns)
        self.timeout = settings.timeout
        self._dnssec: dict[str, bool] = {}

    def get_nameservers(self, zone: str) -> list[str]:
        return list(self.nameservers)

    def get_zone_records(self, zone: str, meta: dict[str, str] | None = None) -> list[Record]:
        records = fetch_zone_records(
            zone, self.transfer_host, port=self.transfer_port, key=self.transfer_key, timeout=self.timeout
        )
        self._dnssec[zone] = any(record.type in DNSSEC_TYPES for record in records)
        return [record for record in records if record.type != "SOA" and record.type not in DNSSEC_TYPES]

    def _dnssec_report(self, dc: DomainConfig) -> list[Correction]:
        signed = self._dnssec.get(dc.name, False)
        if dc.auto_dnssec == "on" and not signed:
            return [
                Correction(
                    msg=f"INFO: AUTODNSSEC is enabled for {dc.name} but no DNSKEY was found; "
                    "the server must be configured to sign the zone"
                )
            ]
        if dc.auto_dnssec == "off" and signed:
            return [
                Correction(
                    msg=f"INFO: AUTODNSSEC is disabled for {dc.name} but the zone is signed; "
                    "the server must be configured to stop signing it"
                )
            ]
        return []

    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[Record]) -> list[Correction]:
        corrections = self._dnssec_report(dc)
        reports, changes = self.plan(dc, existing)
        corrections.extend(reports)
        if not changes:
            return corrections

        corrections.extend(Correction(msg=change.msg) for change in changes)
        ops = rfc2136_operations(changes, dc.name, no_last_ns=self.no_last_ns)
        batches = split_buggy_cname(ops) if self.buggy_cname else [ops]
        for index, batch in enumerate(batches, start=1):
            label = "Update" if len(batches) == 1 else f"Update (part {index}/{len(batches)})"
            corrections.append(
                Correction(
                    msg=f"{label}: {len(batch)} operations on {self.master}:{self.port}",
                    fn=lambda batch=batch: self._send(dc.name, batch),
                )
            )
        return corrections

    def _send(self, zone: str, batch: list[UpdateOp]) -> None:
        for op in batch:
            LOG.debug("%s: %s", zone, op.describe())
        send_update(
            zone,
            [(op.action, op.record) for op in batch],
            self.master,
            port=self.port,
            key=self.update_key,
            timeout=self.timeout,
        )
