"""Detect records owned by Kubernetes external-dns.

external-dns writes a TXT "registry" record next to every record it
manages; its content contains ``heritage=external-dns``.  The TXT label
encodes the managed record: an optional custom prefix, then a type prefix
such as ``a-`` or ``cname.``, then the managed label.  Older registries
carry no type prefix at all, in which case every common type at the label
is assumed to be managed.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Record

HERITAGE = "heritage=external-dns"

TYPE_PREFIXES: list[tuple[str, str]] = [
    ("aaaa.", "AAAA"),
    ("aaaa-", "AAAA"),
    ("a.", "A"),
    ("a-", "A"),
    ("cname.", "CNAME"),
    ("cname-", "CNAME"),
    ("ns.", "NS"),
    ("ns-", "NS"),
    ("mx.", "MX"),
    ("mx-", "MX"),
    ("srv.", "SRV"),
    ("srv-", "SRV"),
    ("txt.", "TXT"),
    ("txt-", "TXT"),
]
APEX_TYPES = {"a": "A", "aaaa": "AAAA", "cname": "CNAME", "ns": "NS", "mx": "MX", "srv": "SRV", "txt": "TXT"}
LEGACY_TYPES = ("A", "AAAA", "CNAME", "NS", "MX", "SRV")


@dataclass(frozen=True)
class ManagedRecord:
    """A label (and type, when known) claimed by an external-dns registry TXT."""

    label: str
    type: str = ""


def is_registry_record(record: Record) -> bool:
    """Return True for TXT records written by external-dns."""
    return record.type == "TXT" and HERITAGE in record.target()


def parse_registry_label(label: str, prefix: str = "") -> ManagedRecord:
    """Infer the managed label and type from a registry TXT label."""
    working = label
    if prefix and working.lower().startswith(prefix.lower()):
        working = working[len(prefix):]

    lowered = working.lower()
    for type_prefix, rtype in TYPE_PREFIXES:
        if lowered.startswith(type_prefix):
            return ManagedRecord(working[len(type_prefix):] or "@", rtype)

    if prefix and working != label:
        if lowered in APEX_TYPES:
            return ManagedRecord("@", APEX_TYPES[lowered])
        return ManagedRecord(working or "@")

    return ManagedRecord(label)


def managed_keys(existing: list[Record], prefix: str = "") -> set[tuple[str, str]]:
    """Return the ``(label, type)`` pairs owned by external-dns."""
    keys: set[tuple[str, str]] = set()
    for record in existing:
        if not is_registry_record(record):
            continue
        keys.add((record.label, "TXT"))
        managed = parse_registry_label(record.label, prefix)
        if managed.type:
            keys.add((managed.label, managed.type))
        else:
            keys.update((managed.label, rtype) for rtype in LEGACY_TYPES)
    return keys


def external_dns_records(existing: list[Record], prefix: str = "") -> list[Record]:
    """Return the existing records that external-dns manages."""
    keys = managed_keys(existing, prefix)
    if not keys:
        return []
    return [record for record in existing if (record.label, record.type) in keys]
