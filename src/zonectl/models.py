"""Core data models used by zonectl."""

from __future__ import annotations

import dataclasses
import fnmatch
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .rdata import Rdata, parse_rdata

ComparableFunc = Callable[["Record"], str]


def fqdn_for_label(label: str, origin: str) -> str:
    """Return the owner name for a short label (no trailing dot)."""
    origin = origin.rstrip(".").lower()
    if label in {"", "@"}:
        return origin
    return f"{label}.{origin}".lower()


def label_for_fqdn(name: str, origin: str) -> str:
    """Return the short label of ``name`` relative to ``origin``."""
    name = name.rstrip(".").lower()
    origin = origin.rstrip(".").lower()
    if name == origin:
        return "@"
    suffix = f".{origin}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


@dataclass(frozen=True, order=True)
class RecordKey:
    """Identifies an RRset: owner name plus type."""

    name_fqdn: str
    type: str

    def __str__(self) -> str:
        return f"{self.name_fqdn} {self.type}"


@dataclass(eq=False)
class Record:
    """A DNS resource record.

    ``original`` holds whatever the provider returned for the record; only
    the provider that produced it looks inside.
    """

    label: str
    type: str
    rdata: Rdata
    ttl: int = 0
    name_fqdn: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    original: Any = None

    def key(self) -> RecordKey:
        """Return the RRset key of the record."""
        return RecordKey(self.name_fqdn, self.type)

    def comparable(self, extra: ComparableFunc | None = None) -> str:
        """Return the content identity, excluding TTL."""
        text = self.rdata.comparable()
        if extra is not None:
            folded = extra(self)
            if folded:
                text = f"{text} {folded}"
        return text

    def target(self) -> str:
        """Return the value matched by target globs."""
        return self.rdata.target()

    def set_label(self, label: str, origin: str) -> None:
        """Set the short label and derive ``name_fqdn``."""
        label = label.strip().lower() or "@"
        self.label = label
        self.name_fqdn = fqdn_for_label(label, origin)

    def copy(self) -> "Record":
        """Return a shallow copy with its own metadata map."""
        return dataclasses.replace(self, metadata=dict(self.metadata))

    def describe(self) -> str:
        """Return ``label TYPE rdata`` as shown in plans."""
        return f"{self.label} {self.type} {self.rdata.to_text()}"

    def __str__(self) -> str:
        return f"{self.describe()} ttl={self.ttl}"


def new_record(
    label: str,
    rtype: str,
    text: str,
    origin: str,
    ttl: int = 0,
    metadata: dict[str, str] | None = None,
    original: Any = None,
) -> Record:
    """Build a record from presentation text, resolving names against ``origin``."""
    rtype = rtype.upper()
    record = Record(
        label="@",
        type=rtype,
        rdata=parse_rdata(rtype, text).with_origin(origin),
        ttl=ttl,
        metadata=dict(metadata or {}),
        original=original,
    )
    record.set_label(label, origin)
    return record


def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a shell-style glob where ``*`` also crosses dots."""
    return re.compile(fnmatch.translate((pattern or "*").lower()))


@dataclass
class UnmanagedConfig:
    """Compiled form of an ``UNMANAGED(label, types, target)`` declaration."""

    label_pattern: str = "*"
    type_pattern: str = "*"
    target_pattern: str = "*"
    _label_re: re.Pattern[str] | None = field(default=None, init=False, repr=False)
    _target_re: re.Pattern[str] | None = field(default=None, init=False, repr=False)
    _types: frozenset[str] = field(default=frozenset(), init=False, repr=False)

    def compile(self) -> "UnmanagedConfig":
        """Compile the globs; safe to call more than once."""
        if self._label_re is None:
            self._label_re = _compile_glob(self.label_pattern)
            self._target_re = _compile_glob(self.target_pattern)
            types = {part.strip().upper() for part in (self.type_pattern or "").split(",")}
            types.discard("")
            types.discard("*")
            self._types = frozenset(types)
        return self

    def matches_label(self, label: str) -> bool:
        self.compile()
        return bool(self._label_re.match(label.lower()))

    def matches_type(self, rtype: str) -> bool:
        self.compile()
        return not self._types or rtype.upper() in self._types

    def matches_target(self, target: str) -> bool:
        self.compile()
        return bool(self._target_re.match(target.lower()))

    def matches(self, record: Record) -> bool:
        """Return True when label, type and target all match."""
        return (
            self.matches_label(record.label)
            and self.matches_type(record.type)
            and self.matches_target(record.target())
        )

    def __str__(self) -> str:
        return f"UNMANAGED({self.label_pattern or '*'}, {self.type_pattern or '*'}, {self.target_pattern or '*'})"


@dataclass
class DomainConfig:
    """Desired state and policy for one zone."""

    name: str
    records: list[Record] = field(default_factory=list)
    nameservers: list[str] = field(default_factory=list)
    unmanaged: list[UnmanagedConfig] = field(default_factory=list)
    ensure_absent: list[Record] = field(default_factory=list)
    no_purge: bool = False
    auto_dnssec: str = ""
    ignore_external_dns: bool = False
    external_dns_prefix: str = ""
    unmanaged_safety_check: bool = True
    metadata: dict[str, str] = field(default_factory=dict)
    registrar: str = "none"
    dns_providers: list[str] = field(default_factory=list)
    default_ttl: int | None = None

    def copy(self) -> "DomainConfig":
        """Return a copy that a provider may massage freely."""
        return dataclasses.replace(
            self,
            records=[record.copy() for record in self.records],
            nameservers=list(self.nameservers),
            unmanaged=list(self.unmanaged),
            ensure_absent=[record.copy() for record in self.ensure_absent],
            metadata=dict(self.metadata),
            dns_providers=list(self.dns_providers),
        )

    def has_record(self, rtype: str, name_fqdn: str) -> bool:
        """Return True if a record of ``rtype`` exists at ``name_fqdn``."""
        return any(r.type == rtype and r.name_fqdn == name_fqdn for r in self.records)


@dataclass
class DNSConfig:
    """All zones from the desired-state document."""

    domains: list[DomainConfig] = field(default_factory=list)

    def find_domain(self, name: str) -> DomainConfig | None:
        """Return the domain called ``name`` if declared."""
        wanted = name.rstrip(".").lower()
        for domain in self.domains:
            if domain.name == wanted:
                return domain
        return None

    def select(self, names: Iterable[str]) -> list[DomainConfig]:
        """Return the domains whose names are listed (all when empty)."""
        wanted = {name.rstrip(".").lower() for name in names}
        if not wanted:
            return list(self.domains)
        return [domain for domain in self.domains if domain.name in wanted]


@dataclass
class Correction:
    """A plan line, optionally paired with the function that performs it."""

    msg: str
    fn: Callable[[], None] | None = None
    depends_on: frozenset[str] = frozenset()
    provides: frozenset[str] = frozenset()

    @property
    def is_report(self) -> bool:
        return self.fn is None


class ZonectlError(Exception):
    """Base exception for zonectl."""


class ConfigError(ZonectlError):
    """Raised for usage or configuration problems."""


class ProviderConfigError(ConfigError):
    """Raised when a provider's credentials are incomplete."""

    def __init__(self, provider: str, missing: list[str]):
        self.provider = provider
        self.missing = missing
        super().__init__(f"provider {provider} is missing required credentials: {', '.join(missing)}")


class ValidationError(ZonectlError):
    """Raised when desired state is invalid."""


class ValidationWarning(ZonectlError):
    """A soft validation problem; reported but never fatal."""


class ProviderError(ZonectlError):
    """Raised when a provider API call fails."""


class RateLimitedError(ProviderError):
    """The provider asked us to slow down."""


class TransientAPIError(ProviderError):
    """A server-side or network failure worth retrying."""


class FatalAPIError(ProviderError):
    """An error that makes further work on the zone pointless."""


class AuthenticationError(FatalAPIError):
    """Credentials were rejected."""


class ZoneNotFoundError(FatalAPIError):
    """The zone does not exist at the provider."""


class ConflictError(ZonectlError):
    """Desired records overlap UNMANAGED patterns while the safety check is on."""

    def __init__(self, zone: str, conflicts: list[Record]):
        self.zone = zone
        self.conflicts = conflicts
        lines = "\n".join(f"    {record.describe()}" for record in conflicts)
        super().__init__(
            f"{zone}: {len(conflicts)} records that are both UNMANAGED and not ignored:\n{lines}\n"
            "Unsafe to continue. Add unmanaged_safety_check: false to the zone to disable this check."
        )
