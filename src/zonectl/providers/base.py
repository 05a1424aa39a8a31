"""Provider contract shared by every DNS host and registrar."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..diffing import Change, by_record, by_record_set, by_zone
from ..handsoff import HandsOffResult, handsoff
from ..models import ComparableFunc, Correction, DomainConfig, ProviderConfigError, Record

LOG = logging.getLogger("zonectl")


class Capability(str, enum.Enum):
    """Features a provider may declare."""

    CAN_GET_ZONES = "CanGetZones"
    CAN_USE_ALIAS = "CanUseAlias"
    CAN_USE_CAA = "CanUseCAA"
    CAN_USE_DS = "CanUseDS"
    CAN_USE_NAPTR = "CanUseNAPTR"
    CAN_USE_SRV = "CanUseSRV"
    CAN_USE_SSHFP = "CanUseSSHFP"
    CAN_USE_TLSA = "CanUseTLSA"
    CAN_USE_PTR = "CanUsePTR"
    CAN_USE_LOC = "CanUseLOC"
    CAN_USE_SVCB = "CanUseSVCB"
    CAN_USE_HTTPS = "CanUseHTTPS"
    CAN_AUTO_DNSSEC = "CanAutoDNSSEC"
    CAN_CONCUR = "CanConcur"
    DOC_CREATE_DOMAINS = "DocCreateDomains"
    DOC_DUAL_HOST = "DocDualHost"
    DOC_OFFICIALLY_SUPPORTED = "DocOfficiallySupported"


class Granularity(str, enum.Enum):
    """How much of a zone one provider API call replaces."""

    RECORD = "record"
    RECORD_SET = "recordset"
    ZONE = "zone"


class ProviderCredentials(BaseModel):
    """Base schema for a provider's credentials map."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


def parse_credentials(model: type[ProviderCredentials], provider: str, creds: dict[str, str]) -> Any:
    """Validate ``creds`` against ``model``; every missing key is reported at once."""
    known: set[str] = {"TYPE"}
    missing: list[str] = []
    for name, info in model.model_fields.items():
        key = info.alias or name
        known.update({key, name})
        if info.is_required() and key not in creds and name not in creds:
            missing.append(key)
    if missing:
        raise ProviderConfigError(provider, missing)
    for key in sorted(set(creds) - known):
        LOG.warning("provider %s: ignoring unknown credential %r", provider, key)
    try:
        return model.model_validate({k: v for k, v in creds.items() if k in known})
    except PydanticValidationError as exc:
        raise ProviderConfigError(provider, [str(err["loc"][0]) for err in exc.errors()]) from exc


def correction_for(change: Change, fn: Callable[[], None] | None) -> Correction:
    """Wrap a change in a correction, carrying its dependency hints."""
    return Correction(msg=change.msg, fn=fn, depends_on=change.depends_on, provides=change.provides)


def normalize_nameservers(names: list[str]) -> list[str]:
    """Lowercase, strip trailing dots, dedupe and sort."""
    return sorted({name.strip().rstrip(".").lower() for name in names if name.strip()})


class DNSProvider(ABC):
    """A DNS hosting backend."""

    TYPE_NAME = ""
    CAPABILITIES: frozenset[Capability] = frozenset()
    GRANULARITY = Granularity.RECORD

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        self.name = name
        self.creds = dict(creds or {})
        self.full_report = False

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.CAPABILITIES

    def list_zones(self) -> list[str]:
        """Return the zones present at the provider."""
        raise NotImplementedError(f"{self.TYPE_NAME} cannot list zones")

    def ensure_zone_exists(self, zone: str) -> None:
        """Create ``zone`` if it is missing."""

    @abstractmethod
    def get_nameservers(self, zone: str) -> list[str]:
        """Return the nameservers the provider serves ``zone`` from."""

    @abstractmethod
    def get_zone_records(self, zone: str, meta: dict[str, str] | None = None) -> list[Record]:
        """Return the records currently at the provider."""

    @abstractmethod
    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[Record]) -> list[Correction]:
        """Return the corrections that make the provider match ``dc``."""

    def comparable_extra(self) -> ComparableFunc | None:
        """Return a function folding provider-only fields into comparisons."""
        return None

    def protect(self, dc: DomainConfig, existing: list[Record]) -> HandsOffResult:
        """Run the hands-off pass for ``dc``."""
        return handsoff(
            dc.name,
            existing,
            dc.records,
            absences=dc.ensure_absent,
            unmanaged=dc.unmanaged,
            no_purge=dc.no_purge,
            ignore_external_dns=dc.ignore_external_dns,
            external_dns_prefix=dc.external_dns_prefix,
            unmanaged_safety_check=dc.unmanaged_safety_check,
            full_report=self.full_report,
        )

    def plan(self, dc: DomainConfig, existing: list[Record]) -> tuple[list[Correction], list[Change]]:
        """Apply hands-off and diff at this provider's granularity.

        Returns the report corrections and the changes still to be wrapped.
        """
        result = self.protect(dc, existing)
        reports = [Correction(msg="\n".join(result.msgs))] if result.msgs else []
        extra = self.comparable_extra()
        if self.GRANULARITY == Granularity.ZONE:
            changes = by_zone(existing, result.desired, dc.name, extra)
        elif self.GRANULARITY == Granularity.RECORD_SET:
            changes = by_record_set(existing, result.desired, extra)
        else:
            changes = by_record(existing, result.desired, extra)
        return reports, changes


class Registrar(ABC):
    """A registrar that delegates a domain to nameservers."""

    TYPE_NAME = ""

    def __init__(self, name: str, creds: dict[str, str] | None = None):
        self.name = name
        self.creds = dict(creds or {})

    @abstractmethod
    def get_registrar_corrections(self, dc: DomainConfig) -> list[Correction]:
        """Return at most one correction updating the delegation."""

    def nameserver_corrections(
        self, dc: DomainConfig, current: list[str], setter: Callable[[list[str]], None]
    ) -> list[Correction]:
        """Compare delegated and desired nameservers."""
        found = normalize_nameservers(current)
        wanted = normalize_nameservers(dc.nameservers)
        if found == wanted:
            return []

        def apply(names: list[str] = wanted) -> None:
            setter(names)

        return [
            Correction(
                msg=f"Change nameservers from '{','.join(found)}' to '{','.join(wanted)}'",
                fn=apply,
            )
        ]
