"""Typed record data: one class per RR type.

Each class owns its presentation text (``to_text``) and the string used to
decide whether two records carry the same content (``comparable``).  Hostname
fields are stored without a trailing dot once canonicalised; the dot is added
back only when the value is rendered.
"""

from __future__ import annotations

import dataclasses
import shlex
from dataclasses import dataclass
from typing import ClassVar

TXT_CHUNK = 255


def absolute_name(name: str) -> str:
    """Return ``name`` with exactly one trailing dot."""
    if name in {"", "."}:
        return "."
    if name == "@":
        return "@"
    return name if name.endswith(".") else f"{name}."


def canonical_name(name: str, origin: str) -> str:
    """Resolve a possibly relative hostname against ``origin``.

    ``@`` is the origin itself, names ending in a dot are absolute and
    anything else is relative to the origin.  The result carries no
    trailing dot and is lowercased.
    """
    name = name.strip()
    origin = origin.rstrip(".").lower()
    if name in {"", "@"}:
        return origin
    if name == ".":
        return "."
    if name.endswith("."):
        return name[:-1].lower()
    return f"{name}.{origin}".lower()


def _split(text: str, count: int, rtype: str) -> list[str]:
    """Split presentation text into exactly ``count`` fields."""
    try:
        fields = shlex.split(text)
    except ValueError as exc:
        raise ValueError(f"{rtype} rdata {text!r} is not parseable: {exc}") from exc
    if len(fields) != count:
        raise ValueError(f"{rtype} rdata {text!r} needs {count} fields, found {len(fields)}")
    return fields


def _int(value: str, rtype: str, field_name: str) -> int:
    """Parse an unsigned integer field."""
    try:
        number = int(value)
    except ValueError as exc:
        raise ValueError(f"{rtype} {field_name} {value!r} is not a number") from exc
    if number < 0:
        raise ValueError(f"{rtype} {field_name} {value!r} must not be negative")
    return number


def _quote(value: str) -> str:
    """Quote a character-string for presentation format."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Rdata:
    """Base class for record data."""

    rtype: ClassVar[str] = ""
    hostname_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def parse(cls, text: str) -> "Rdata":
        raise NotImplementedError

    def to_text(self) -> str:
        raise NotImplementedError

    def comparable(self) -> str:
        """Return the content identity used by the diff engine."""
        return self.to_text()

    def target(self) -> str:
        """Return the value matched by target globs and shown to operators."""
        return self.to_text()

    def hostnames(self) -> list[str]:
        """Return every hostname this rdata points at (no trailing dot)."""
        return [getattr(self, name) for name in self.hostname_fields]

    def with_origin(self, origin: str) -> "Rdata":
        """Return a copy whose hostname fields are absolute and lowercased."""
        if not self.hostname_fields:
            return self
        changes = {name: canonical_name(getattr(self, name), origin) for name in self.hostname_fields}
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class A(Rdata):
    rtype: ClassVar[str] = "A"

    address: str

    @classmethod
    def parse(cls, text: str) -> "A":
        return cls(address=text.strip())

    def to_text(self) -> str:
        return self.address


@dataclass(frozen=True)
class AAAA(Rdata):
    rtype: ClassVar[str] = "AAAA"

    address: str

    @classmethod
    def parse(cls, text: str) -> "AAAA":
        return cls(address=text.strip().lower())

    def to_text(self) -> str:
        return self.address


@dataclass(frozen=True)
class _Hostname(Rdata):
    """Rdata consisting of a single hostname."""

    hostname_fields: ClassVar[tuple[str, ...]] = ("host",)

    host: str

    @classmethod
    def parse(cls, text: str):
        return cls(host=text.strip())

    def to_text(self) -> str:
        return absolute_name(self.host)


@dataclass(frozen=True)
class CNAME(_Hostname):
    rtype: ClassVar[str] = "CNAME"


@dataclass(frozen=True)
class NS(_Hostname):
    rtype: ClassVar[str] = "NS"


@dataclass(frozen=True)
class PTR(_Hostname):
    rtype: ClassVar[str] = "PTR"


@dataclass(frozen=True)
class ALIAS(_Hostname):
    rtype: ClassVar[str] = "ALIAS"


@dataclass(frozen=True)
class MX(Rdata):
    rtype: ClassVar[str] = "MX"
    hostname_fields: ClassVar[tuple[str, ...]] = ("exchange",)

    preference: int
    exchange: str

    @classmethod
    def parse(cls, text: str) -> "MX":
        preference, exchange = _split(text, 2, cls.rtype)
        return cls(preference=_int(preference, cls.rtype, "preference"), exchange=exchange)

    def to_text(self) -> str:
        return f"{self.preference} {absolute_name(self.exchange)}"

    def target(self) -> str:
        return absolute_name(self.exchange)


@dataclass(frozen=True)
class SRV(Rdata):
    rtype: ClassVar[str] = "SRV"
    hostname_fields: ClassVar[tuple[str, ...]] = ("host",)

    priority: int
    weight: int
    port: int
    host: str

    @classmethod
    def parse(cls, text: str) -> "SRV":
        priority, weight, port, host = _split(text, 4, cls.rtype)
        return cls(
            priority=_int(priority, cls.rtype, "priority"),
            weight=_int(weight, cls.rtype, "weight"),
            port=_int(port, cls.rtype, "port"),
            host=host,
        )

    def to_text(self) -> str:
        return f"{self.priority} {self.weight} {self.port} {absolute_name(self.host)}"

    def target(self) -> str:
        return absolute_name(self.host)


@dataclass(frozen=True)
class TXT(Rdata):
    """TXT data; ``segments`` are compared by their joined value."""

    rtype: ClassVar[str] = "TXT"

    segments: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> "TXT":
        stripped = text.strip()
        if stripped.startswith('"'):
            try:
                return cls(segments=tuple(shlex.split(stripped)))
            except ValueError as exc:
                raise ValueError(f"TXT rdata {text!r} is not parseable: {exc}") from exc
        return cls(segments=(text,))

    @property
    def value(self) -> str:
        return "".join(self.segments)

    def chunks(self) -> list[str]:
        """Return the logical value split into wire-sized pieces."""
        raw = self.value.encode("utf-8")
        if not raw:
            return [""]
        pieces = []
        while raw:
            cut = min(TXT_CHUNK, len(raw))
            # never split inside a multi-byte character
            while cut < len(raw) and (raw[cut] & 0xC0) == 0x80:
                cut -= 1
            pieces.append(raw[:cut].decode("utf-8"))
            raw = raw[cut:]
        return pieces

    def to_text(self) -> str:
        return " ".join(_quote(chunk) for chunk in self.chunks())

    def comparable(self) -> str:
        return self.value

    def target(self) -> str:
        return self.value


@dataclass(frozen=True)
class CAA(Rdata):
    rtype: ClassVar[str] = "CAA"

    flag: int
    tag: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "CAA":
        flag, tag, value = _split(text, 3, cls.rtype)
        return cls(flag=_int(flag, cls.rtype, "flag"), tag=tag, value=value)

    def to_text(self) -> str:
        return f"{self.flag} {self.tag} {_quote(self.value)}"

    def target(self) -> str:
        return self.value


@dataclass(frozen=True)
class SSHFP(Rdata):
    rtype: ClassVar[str] = "SSHFP"

    algorithm: int
    fingerprint_type: int
    fingerprint: str

    @classmethod
    def parse(cls, text: str) -> "SSHFP":
        algorithm, fp_type, fingerprint = _split(text, 3, cls.rtype)
        return cls(
            algorithm=_int(algorithm, cls.rtype, "algorithm"),
            fingerprint_type=_int(fp_type, cls.rtype, "fingerprint type"),
            fingerprint=fingerprint.lower(),
        )

    def to_text(self) -> str:
        return f"{self.algorithm} {self.fingerprint_type} {self.fingerprint}"


@dataclass(frozen=True)
class TLSA(Rdata):
    rtype: ClassVar[str] = "TLSA"

    usage: int
    selector: int
    matching_type: int
    certificate: str

    @classmethod
    def parse(cls, text: str) -> "TLSA":
        usage, selector, matching_type, certificate = _split(text, 4, cls.rtype)
        return cls(
            usage=_int(usage, cls.rtype, "usage"),
            selector=_int(selector, cls.rtype, "selector"),
            matching_type=_int(matching_type, cls.rtype, "matching type"),
            certificate=certificate.lower(),
        )

    def to_text(self) -> str:
        return f"{self.usage} {self.selector} {self.matching_type} {self.certificate}"


@dataclass(frozen=True)
class NAPTR(Rdata):
    rtype: ClassVar[str] = "NAPTR"
    hostname_fields: ClassVar[tuple[str, ...]] = ("replacement",)

    order: int
    preference: int
    flags: str
    service: str
    regexp: str
    replacement: str

    @classmethod
    def parse(cls, text: str) -> "NAPTR":
        order, preference, flags, service, regexp, replacement = _split(text, 6, cls.rtype)
        return cls(
            order=_int(order, cls.rtype, "order"),
            preference=_int(preference, cls.rtype, "preference"),
            flags=flags,
            service=service,
            regexp=regexp,
            replacement=replacement,
        )

    def to_text(self) -> str:
        return (
            f"{self.order} {self.preference} {_quote(self.flags)} {_quote(self.service)} "
            f"{_quote(self.regexp)} {absolute_name(self.replacement)}"
        )

    def target(self) -> str:
        return absolute_name(self.replacement)


@dataclass(frozen=True)
class DS(Rdata):
    rtype: ClassVar[str] = "DS"

    key_tag: int
    algorithm: int
    digest_type: int
    digest: str

    @classmethod
    def parse(cls, text: str) -> "DS":
        key_tag, algorithm, digest_type, digest = _split(text, 4, cls.rtype)
        return cls(
            key_tag=_int(key_tag, cls.rtype, "key tag"),
            algorithm=_int(algorithm, cls.rtype, "algorithm"),
            digest_type=_int(digest_type, cls.rtype, "digest type"),
            digest=digest.lower(),
        )

    def to_text(self) -> str:
        return f"{self.key_tag} {self.algorithm} {self.digest_type} {self.digest}"


@dataclass(frozen=True)
class SVCB(Rdata):
    rtype: ClassVar[str] = "SVCB"
    hostname_fields: ClassVar[tuple[str, ...]] = ("host",)

    priority: int
    host: str
    params: str = ""

    @classmethod
    def parse(cls, text: str):
        fields = text.split(None, 2)
        if len(fields) < 2:
            raise ValueError(f"{cls.rtype} rdata {text!r} needs a priority and a target")
        params = fields[2].strip() if len(fields) > 2 else ""
        return cls(priority=_int(fields[0], cls.rtype, "priority"), host=fields[1], params=params)

    def to_text(self) -> str:
        text = f"{self.priority} {absolute_name(self.host)}"
        return f"{text} {self.params}" if self.params else text

    def target(self) -> str:
        return absolute_name(self.host)


@dataclass(frozen=True)
class HTTPS(SVCB):
    rtype: ClassVar[str] = "HTTPS"


@dataclass(frozen=True)
class LOC(Rdata):
    rtype: ClassVar[str] = "LOC"

    text: str

    @classmethod
    def parse(cls, text: str) -> "LOC":
        return cls(text=" ".join(text.split()))

    def to_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class SOA(Rdata):
    rtype: ClassVar[str] = "SOA"
    hostname_fields: ClassVar[tuple[str, ...]] = ("mname", "rname")

    mname: str
    rname: str
    serial: int
    refresh: int
    retry: int
    expire: int
    minimum: int

    @classmethod
    def parse(cls, text: str) -> "SOA":
        mname, rname, *numbers = _split(text, 7, cls.rtype)
        serial, refresh, retry, expire, minimum = (_int(n, cls.rtype, "field") for n in numbers)
        return cls(mname, rname, serial, refresh, retry, expire, minimum)

    def to_text(self) -> str:
        return (
            f"{absolute_name(self.mname)} {absolute_name(self.rname)} "
            f"{self.serial} {self.refresh} {self.retry} {self.expire} {self.minimum}"
        )

    def comparable(self) -> str:
        # the serial is owned by whoever writes the zone
        return (
            f"{absolute_name(self.mname)} {absolute_name(self.rname)} "
            f"{self.refresh} {self.retry} {self.expire} {self.minimum}"
        )


@dataclass(frozen=True)
class Generic(Rdata):
    """Opaque rdata for pseudo and provider-custom types."""

    text: str

    @classmethod
    def parse(cls, text: str) -> "Generic":
        return cls(text=text.strip())

    def to_text(self) -> str:
        return self.text


RDATA_TYPES: dict[str, type[Rdata]] = {
    cls.rtype: cls
    for cls in (A, AAAA, CNAME, NS, PTR, ALIAS, MX, SRV, TXT, CAA, SSHFP, TLSA, NAPTR, DS, SVCB, HTTPS, LOC, SOA)
}


def parse_rdata(rtype: str, text: str) -> Rdata:
    """Parse presentation text for ``rtype``; unknown types become Generic."""
    cls = RDATA_TYPES.get(rtype.upper(), Generic)
    return cls.parse(text)
