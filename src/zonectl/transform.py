"""IPv4 transform tables used by IMPORT_TRANSFORM and record transforms.

A table is a ``;``-separated list of ``low~high~newBase~newIPs`` rules.  The
first rule whose inclusive range holds the address decides the result:
``newBase`` shifts the address by its offset from ``low``; otherwise
``newIPs`` (comma separated) replaces it.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from ipaddress import IPv4Address


@dataclass(frozen=True)
class IPConversion:
    """One rule of a transform table."""

    low: IPv4Address
    high: IPv4Address
    new_base: IPv4Address | None
    new_ips: tuple[IPv4Address, ...]


def _address(text: str, table: str) -> IPv4Address:
    try:
        return IPv4Address(text.strip())
    except ipaddress.AddressValueError as exc:
        raise ValueError(f"transform table {table!r}: {text!r} is not an IPv4 address") from exc


def decode_transform_table(table: str) -> list[IPConversion]:
    """Parse a transform table, raising ValueError on malformed rules."""
    conversions: list[IPConversion] = []
    for row in table.split(";"):
        row = row.strip()
        if not row:
            continue
        items = row.split("~")
        if len(items) != 4:
            raise ValueError(f"transform table rows should have 4 elements, {len(items)} found in {row!r}")
        low = _address(items[0], table)
        high = _address(items[1], table)
        if low > high:
            raise ValueError(f"transform table {row!r}: low ({low}) is greater than high ({high})")
        new_base = _address(items[2], table) if items[2].strip() else None
        new_ips = tuple(_address(ip, table) for ip in items[3].split(",") if ip.strip())
        if new_base is not None and new_ips:
            raise ValueError(f"transform table {row!r}: newBase and newIPs are mutually exclusive")
        if new_base is None and not new_ips:
            raise ValueError(f"transform table {row!r}: one of newBase or newIPs is required")
        conversions.append(IPConversion(low, high, new_base, new_ips))
    return conversions


def transform_ip(address: str, conversions: list[IPConversion]) -> list[str]:
    """Return the address(es) ``address`` maps to; unmatched input is returned as-is."""
    ip = IPv4Address(address)
    for rule in conversions:
        if not rule.low <= ip <= rule.high:
            continue
        if rule.new_base is not None:
            offset = int(ip) - int(rule.low)
            return [str(rule.new_base + offset)]
        return [str(new_ip) for new_ip in rule.new_ips]
    return [address]
