"""Zone files on disk in BIND format."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field

from ..axfr import zone_to_records
from ..diffing import ChangeType
from ..models import Correction, DomainConfig, ProviderError, Record
from ..rdata import SOA
from ..renderer import render_zone, suggest_serial, write_zone_file
from .base import Capability, DNSProvider, Granularity, ProviderCredentials, correction_for, parse_credentials

LOG = logging.getLogger("zonectl")


class BindCredentials(ProviderCredentials):
    directory: str = "zones"
    filenameformat: str = "{zone}.zone"
    default_ns: str = ""
    soa_master: str = Field(default="", alias="default_soa_master")
    soa_mbox: str = Field(default="", alias="default_soa_mbox")
    soa_refresh: int = Field(default=3600, alias="default_soa_refresh")
    soa_retry: int = Field(default=600, alias="default_soa_retry")
    soa_expire: int = Field(default=604800, alias="default_soa_expire")
    soa_minttl: int = Field(default=1440, alias="default_soa_minttl")
    serial_strategy: str = "date"


class BindProvider(DNSProvider):
    """Writes one zone file per zone, replacing it whole."""

    TYPE_NAME = "BIND"
    CAPABILITIES = frozenset(
        {
            Capability.CAN_CONCUR,
            Capability.CAN_GET_ZONES,
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
            Capability.DOC_CREATE_DOMAINS,
            Capability.DOC_DUAL_HOST,
            Capability.DOC_OFFICIALLY_SUPPORTED,
        }
    )
    GRANULARITY = Granularity.ZONE

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        super().__init__(name, creds)
        settings = parse_credentials(BindCredentials, name, self.creds)
        if "{zone}" not in settings.filenameformat:
            raise ProviderError(f"provider {name}: filenameformat must contain {{zone}}")
        self.settings = settings
        self.directory = Path(settings.directory)
        self.nameservers = [ns.strip() for ns in settings.default_ns.split(",") if ns.strip()]
        self._soa: dict[str, SOA] = {}

    def zone_path(self, zone: str) -> Path:
        return self.directory / self.settings.filenameformat.format(zone=zone)

    def list_zones(self) -> list[str]:
        prefix, _, suffix = self.settings.filenameformat.partition("{zone}")
        if not self.directory.is_dir():
            return []
        zones = []
        for path in self.directory.iterdir():
            name = path.name
            if path.is_file() and name.startswith(prefix) and name.endswith(suffix):
                zones.append(name[len(prefix) : len(name) - len(suffix)])
        return sorted(zones)

    def ensure_zone_exists(self, zone: str) -> None:
        # the file is created on first write
        self.directory.mkdir(parents=True, exist_ok=True)

    def get_nameservers(self, zone: str) -> list[str]:
        return list(self.nameservers)

    def get_zone_records(self, zone: str, meta: dict[str, str] | None = None) -> list[Record]:
        import dns.exception
        import dns.zone

        path = self.zone_path(zone)
        if not path.exists():
            LOG.info("File does not yet exist: %s (will create)", path)
            return []
        try:
            parsed = dns.zone.from_file(str(path), origin=f"{zone}.", relativize=False, check_origin=False)
        except dns.exception.DNSException as exc:
            raise ProviderError(f"cannot parse zone file {path}: {exc}") from exc
        records = zone_to_records(parsed, zone)
        for record in records:
            if record.type == "SOA":
                self._soa[zone] = record.rdata
        return records

    def _soa_for(self, dc: DomainConfig) -> SOA:
        """Build the SOA to write, bumping the serial of the current one."""
        current = self._soa.get(dc.name)
        desired = next((r.rdata for r in dc.records if r.type == "SOA"), None)
        settings = self.settings
        base = desired or current
        mname = base.mname if base else (settings.soa_master or (self.nameservers or [f"ns.{dc.name}"])[0])
        rname = base.rname if base else (settings.soa_mbox or f"hostmaster.{dc.name}")
        serial = suggest_serial(settings.serial_strategy, current.serial if current else None)
        if base is not None:
            return SOA(mname.rstrip("."), rname.rstrip("."), serial, base.refresh, base.retry, base.expire, base.minimum)
        return SOA(
            mname.rstrip("."),
            rname.rstrip("."),
            serial,
            settings.soa_refresh,
            settings.soa_retry,
            settings.soa_expire,
            settings.soa_minttl,
        )

    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[Record]) -> list[Correction]:
        # the serial always changes, so SOA content is compared separately
        existing_soa = [r for r in existing if r.type == "SOA"]
        desired_soa = [r for r in dc.records if r.type == "SOA"]
        work = dc.copy()
        work.records = [r for r in dc.records if r.type != "SOA"]
        current = [r for r in existing if r.type != "SOA"]
        reports, changes = self.plan(work, current)
        corrections = list(reports)
        path = self.zone_path(dc.name)
        for change in changes:
            if change.type == ChangeType.REPORT:
                corrections.append(Correction(msg=change.msg))
                continue
            records = list(change.new)
            corrections.append(correction_for(change, lambda records=records: self._write(dc, records, path)))

        soa_changed = bool(desired_soa) and (
            not existing_soa or desired_soa[0].comparable() != existing_soa[0].comparable()
        )
        if soa_changed and not changes:
            records = self.protect(work, current).desired
            corrections.append(
                Correction(
                    msg=f"write zone {dc.name} (SOA changed)",
                    fn=lambda: self._write(dc, records, path),
                )
            )
        return corrections

    def _write(self, dc: DomainConfig, records: list[Record], path: Path) -> None:
        soa = self._soa_for(dc)
        result = render_zone(dc.name, records, soa, path, default_ttl=dc.default_ttl or 300)
        write_zone_file(result)
        self._soa[dc.name] = soa
        LOG.info("Wrote zone file to %s", path)
