"""Turn user-authored zones into canonical records and validate them."""

from __future__ import annotations

import ipaddress
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Mapping

import idna

from .models import (
    DNSConfig,
    DomainConfig,
    Record,
    ValidationError,
    ValidationWarning,
    ZonectlError,
)
from .providers.base import Capability
from .rdata import canonical_name, parse_rdata
from .transform import decode_transform_table, transform_ip

LOG = logging.getLogger("zonectl")

DEFAULT_TTL = 300
PSEUDO_TYPES = frozenset({"IMPORT_TRANSFORM"})
VALID_TYPES = frozenset(
    {
        "A", "AAAA", "ALIAS", "CAA", "CNAME", "DS", "HTTPS", "LOC", "MX", "NAPTR",
        "NS", "PTR", "SOA", "SRV", "SSHFP", "SVCB", "TLSA", "TXT",
    }
)
TARGET_TYPES = frozenset({"ALIAS", "CNAME", "MX", "NS", "PTR", "SRV"})
CAA_TAGS = frozenset({"issue", "issuewild", "iodef"})
INVALID_TARGET_CHARS = set("'\" +,|!£$%&()=?^*ç°§;:<>[]@")


@dataclass(frozen=True)
class CustomType:
    """A record type understood by exactly one provider type."""

    name: str
    provider: str
    real_type: str = ""


CUSTOM_TYPES: dict[str, CustomType] = {
    custom.name: custom
    for custom in (
        CustomType("CF_REDIRECT", "CLOUDFLAREAPI"),
        CustomType("CLOUDFLAREAPI_SINGLE_REDIRECT", "CLOUDFLAREAPI"),
        CustomType("AZURE_ALIAS", "AZURE_DNS"),
        CustomType("MIKROTIK_FWD", "MIKROTIK"),
        CustomType("MIKROTIK_NXDOMAIN", "MIKROTIK"),
        CustomType("MIKROTIK_FORWARDER", "MIKROTIK"),
    )
}

CAPABILITY_CHECKS: list[tuple[str, Capability]] = [
    ("ALIAS", Capability.CAN_USE_ALIAS),
    ("AUTODNSSEC", Capability.CAN_AUTO_DNSSEC),
    ("CAA", Capability.CAN_USE_CAA),
    ("DS", Capability.CAN_USE_DS),
    ("HTTPS", Capability.CAN_USE_HTTPS),
    ("LOC", Capability.CAN_USE_LOC),
    ("NAPTR", Capability.CAN_USE_NAPTR),
    ("PTR", Capability.CAN_USE_PTR),
    ("SRV", Capability.CAN_USE_SRV),
    ("SSHFP", Capability.CAN_USE_SSHFP),
    ("SVCB", Capability.CAN_USE_SVCB),
    ("TLSA", Capability.CAN_USE_TLSA),
]


def split_warnings(problems: list[ZonectlError]) -> tuple[list[ZonectlError], list[ValidationWarning]]:
    """Separate hard errors from warnings."""
    errors = [p for p in problems if not isinstance(p, ValidationWarning)]
    warnings = [p for p in problems if isinstance(p, ValidationWarning)]
    return errors, warnings


def _to_ascii(name: str) -> str:
    """Return the punycode form of an internationalised name."""
    if name.isascii():
        return name.lower()
    labels = []
    for label in name.split("."):
        if label.isascii():
            labels.append(label.lower())
            continue
        try:
            labels.append(idna.encode(label, uts46=True).decode("ascii"))
        except idna.IDNAError as exc:
            raise ValidationError(f"{name!r} is not a valid name: {exc}") from exc
    return ".".join(labels)


def _check_target(target: str) -> str | None:
    """Return a problem description if ``target`` is not a usable hostname."""
    if target == "@":
        return None
    if not target:
        return "empty target"
    if set(target) & INVALID_TARGET_CHARS:
        return f"target ({target}) includes invalid char"
    if "/" in target and not target.endswith(".in-addr.arpa."):
        return f"target ({target}) includes invalid char"
    if "." in target and not target.endswith("."):
        return f"target ({target}) must end with a (.)"
    return None


def _check_label(label: str, rtype: str, domain: str, metadata: dict[str, str]) -> ZonectlError | None:
    if label == "@":
        return None
    if not label:
        return ValidationError(f"empty {rtype} label in {domain}")
    if label.endswith("."):
        return ValidationError(f"label {label}.{domain} ends with a (.)")
    if (label == domain or label.endswith(f".{domain}")) and metadata.get("skip_fqdn_check") != "true":
        shortname = label[: -len(domain) - 1] if label != domain else "@"
        return ValidationError(
            f'The name "{label}.{domain}." is an error (repeats the domain). '
            f'Maybe instead of "{label}" you intended "{shortname}"? '
            "If not set skip_fqdn_check: 'true' on this record to permit it as-is."
        )
    if rtype in {"SRV", "TLSA", "TXT"}:
        return None
    if label.startswith("_") or "._" in label or label.startswith("sql-"):
        return None
    if "_" in label:
        return ValidationWarning(f'label {label}.{domain} contains "_" (can\'t be used in a URL)')
    return None


def _check_record_type(record: Record, domain: str, provider_types: list[str]) -> ZonectlError | None:
    if record.type in VALID_TYPES or record.type in PSEUDO_TYPES:
        return None
    custom = CUSTOM_TYPES.get(record.type)
    if custom is None:
        return ValidationError(f"unsupported record type ({record.type}) domain={domain} name={record.label}")
    for provider_type in provider_types:
        if provider_type != custom.provider:
            return ValidationError(
                f"custom record type {record.type} is not compatible with provider type {provider_type}"
            )
    record.metadata["orig_custom_type"] = record.type
    if custom.real_type:
        record.type = custom.real_type
    return None


def _check_rdata(record: Record, domain: str) -> list[str]:
    """Validate type-specific content before names are canonicalised."""
    rdata = record.rdata
    label = record.label
    problems: list[str] = []
    if record.type == "A":
        try:
            ipaddress.IPv4Address(rdata.address)
        except ValueError:
            problems.append(f"target ({rdata.address}) is not an IPv4 address")
    elif record.type == "AAAA":
        try:
            ipaddress.IPv6Address(rdata.address)
        except ValueError:
            problems.append(f"target ({rdata.address}) is not an IPv6 address")
    elif record.type in TARGET_TYPES:
        for host in rdata.hostnames():
            if record.type == "MX" and host == ".":
                continue
            problem = _check_target(host)
            if problem:
                problems.append(problem)
        if record.type == "CNAME":
            if label == "@":
                problems.append("cannot create CNAME record for bare domain")
            elif canonical_name(rdata.host, domain) == canonical_name(label, domain):
                problems.append("CNAME loop (target points at itself)")
        if record.type == "NS" and label == "@":
            problems.append("cannot create NS record for bare domain. Use nameservers instead")
    elif record.type == "CAA":
        if rdata.tag not in CAA_TAGS:
            problems.append(f"CAA tag {rdata.tag} is invalid, expected one of {', '.join(sorted(CAA_TAGS))}")
    elif record.type == "TLSA":
        if rdata.usage > 3:
            problems.append(f"TLSA usage ({rdata.usage}) must be between 0 and 3")
        if rdata.selector > 1:
            problems.append(f"TLSA selector ({rdata.selector}) must be 0 or 1")
        if rdata.matching_type > 2:
            problems.append(f"TLSA matching type ({rdata.matching_type}) must be between 0 and 2")
    elif record.type == "SOA" and label != "@":
        problems.append("SOA record is only valid for bare domain")
    return [f"in {record.type} {label}.{domain}: {problem}" for problem in problems]


def _normalize_domain(domain: DomainConfig, provider_types: list[str]) -> list[ZonectlError]:
    """Canonicalise one domain in place."""
    problems: list[ZonectlError] = []
    try:
        domain.name = _to_ascii(domain.name.rstrip("."))
    except ValidationError as exc:
        return [exc]
    default_ttl = domain.default_ttl or DEFAULT_TTL
    domain.nameservers = [canonical_name(ns, domain.name) for ns in domain.nameservers]
    for unmanaged in domain.unmanaged:
        unmanaged.compile()

    for record in domain.records:
        if record.ttl == 0:
            record.ttl = default_ttl
        try:
            record.label = _to_ascii(record.label.strip() or "@")
        except ValidationError as exc:
            problems.append(ValidationError(f"label in {domain.name}: {exc}"))
            continue
        problem = _check_record_type(record, domain.name, provider_types)
        if problem is not None:
            problems.append(problem)
            continue
        problem = _check_label(record.label, record.type, domain.name, record.metadata)
        if problem is not None:
            problems.append(problem)
            if not isinstance(problem, ValidationWarning):
                continue
        problems.extend(ValidationError(p) for p in _check_rdata(record, domain.name))
        record.set_label(record.label, domain.name)
        if record.type not in PSEUDO_TYPES:
            record.rdata = record.rdata.with_origin(domain.name)

    for absent in domain.ensure_absent:
        try:
            absent.set_label(_to_ascii(absent.label.strip() or "@"), domain.name)
        except ValidationError as exc:
            problems.append(ValidationError(f"ensure_absent label in {domain.name}: {exc}"))
            continue
        absent.rdata = absent.rdata.with_origin(domain.name)
    return problems


def _import_transform(src: DomainConfig, dst: DomainConfig, table: str, ttl: int) -> None:
    """Copy A and CNAME records of ``src`` into ``dst``, rewriting targets."""
    conversions = decode_transform_table(table)
    imported: list[Record] = []
    for record in src.records:
        if record.type not in {"A", "CNAME"}:
            continue
        new_fqdn = f"{record.name_fqdn}.{dst.name}"
        if dst.has_record(record.type, new_fqdn):
            continue

        def clone(rdata_text: str, original: Record = record) -> Record:
            copy = original.copy()
            copy.set_label(original.name_fqdn, dst.name)
            copy.rdata = parse_rdata(original.type, rdata_text)
            if ttl:
                copy.ttl = ttl
            return copy

        if record.type == "A":
            for address in transform_ip(record.rdata.address, conversions):
                imported.append(clone(address))
        else:
            imported.append(clone(f"{record.rdata.host}.{dst.name}"))
    dst.records.extend(imported)


def _apply_record_transforms(domain: DomainConfig) -> None:
    for record in list(domain.records):
        table = record.metadata.get("transform")
        if record.type != "A" or not table:
            continue
        addresses = transform_ip(record.rdata.address, decode_transform_table(table))
        record.rdata = parse_rdata("A", addresses[0])
        for address in addresses[1:]:
            clone = record.copy()
            clone.rdata = parse_rdata("A", address)
            domain.records.append(clone)


def _check_duplicates(domain: DomainConfig) -> list[ZonectlError]:
    seen: set[str] = set()
    problems: list[ZonectlError] = []
    for record in domain.records:
        diffable = f"{record.name_fqdn} {record.type} {record.comparable()}"
        if diffable in seen:
            problems.append(ValidationError(f"exact duplicate record found: {diffable}"))
        seen.add(diffable)
    return problems


def _check_rrset_ttls(domain: DomainConfig) -> list[ZonectlError]:
    ttls: dict[tuple[str, str], set[int]] = defaultdict(set)
    for record in domain.records:
        ttls[(record.name_fqdn, record.type)].add(record.ttl)
    return [
        ValidationWarning(
            f"{name} {rtype} has multiple TTLs ({', '.join(str(t) for t in sorted(values))}); "
            "providers will use the lowest"
        )
        for (name, rtype), values in sorted(ttls.items())
        if len(values) > 1
    ]


def _check_cnames(domain: DomainConfig) -> list[ZonectlError]:
    problems: list[ZonectlError] = []
    cnames: set[str] = set()
    for record in domain.records:
        if record.type != "CNAME":
            continue
        if record.name_fqdn in cnames:
            problems.append(ValidationError(f"cannot have multiple CNAMEs with same name: {record.name_fqdn}"))
        cnames.add(record.name_fqdn)
    for record in domain.records:
        if record.name_fqdn in cnames and record.type != "CNAME":
            problems.append(
                ValidationError(f"cannot have CNAME and {record.type} record with same name: {record.name_fqdn}")
            )
    return problems


def _check_capabilities(domain: DomainConfig, providers: Mapping[str, Any]) -> list[ZonectlError]:
    problems: list[ZonectlError] = []
    used = {record.type for record in domain.records}
    if domain.auto_dnssec:
        used.add("AUTODNSSEC")
    for rtype, capability in CAPABILITY_CHECKS:
        if rtype not in used:
            continue
        for name in domain.dns_providers:
            provider = providers.get(name)
            if provider is None:
                continue
            if not provider.has_capability(capability):
                problems.append(
                    ValidationError(
                        f"domain {domain.name} uses {rtype} records, "
                        f"but DNS provider type {provider.TYPE_NAME} does not support them"
                    )
                )
    return problems


def normalize_and_validate(config: DNSConfig, providers: Mapping[str, Any] | None = None) -> list[ZonectlError]:
    """Canonicalise every domain in place and return all problems found.

    ``providers`` maps provider names to instantiated providers; provider
    dependent checks are skipped for names it does not contain (``check``
    runs without credentials).
    """
    providers = providers or {}
    problems: list[ZonectlError] = []

    for domain in config.domains:
        provider_types = [providers[n].TYPE_NAME for n in domain.dns_providers if n in providers]
        problems.extend(_normalize_domain(domain, provider_types))

    for domain in config.domains:
        for record in domain.records:
            if record.type != "IMPORT_TRANSFORM":
                continue
            source = config.find_domain(record.rdata.text)
            if source is None:
                problems.append(ValidationError(f"IMPORT_TRANSFORM mentions non-existent domain {record.rdata.text!r}"))
                continue
            try:
                _import_transform(source, domain, record.metadata.get("transform_table", ""), record.ttl)
            except ValueError as exc:
                problems.append(ValidationError(f"IMPORT_TRANSFORM in {domain.name}: {exc}"))

    for domain in config.domains:
        domain.records = [record for record in domain.records if record.type not in PSEUDO_TYPES]
        try:
            _apply_record_transforms(domain)
        except ValueError as exc:
            problems.append(ValidationError(f"transform in {domain.name}: {exc}"))

    for domain in config.domains:
        problems.extend(_check_duplicates(domain))
        problems.extend(_check_rrset_ttls(domain))
        problems.extend(_check_cnames(domain))
        problems.extend(_check_capabilities(domain, providers))

    for problem in problems:
        if isinstance(problem, ValidationWarning):
            LOG.warning("%s", problem)
    return problems
