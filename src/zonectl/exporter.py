"""Utilities to serialise live zones into the desired-state format."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .models import Record
from .rdata import TXT
from .renderer import sort_records

SKIPPED_TYPES = {"SOA"}


def _exported(record: Record) -> bool:
    # apex NS records come from the nameservers list, not from records
    if record.type == "NS" and record.label == "@":
        return False
    return record.type not in SKIPPED_TYPES


def _record_to_dict(record: Record) -> dict[str, Any]:
    """Convert a record into a serialisable dictionary."""
    if isinstance(record.rdata, TXT):
        value: str | list[str] = record.rdata.value if len(record.rdata.segments) <= 1 else list(record.rdata.segments)
    else:
        value = record.rdata.to_text()
    entry: dict[str, Any] = {
        "name": record.label,
        "type": record.type,
        "value": value,
    }
    if record.ttl:
        entry["ttl"] = record.ttl
    return entry


def zones_to_dict(zones: dict[str, list[Record]], provider: str) -> dict[str, Any]:
    """Create a desired-state document describing the given zones."""
    return {
        "zones": [
            {
                "name": zone,
                "dns_providers": [provider],
                "records": [_record_to_dict(r) for r in sort_records(records) if _exported(r)],
            }
            for zone, records in zones.items()
        ]
    }


def zones_to_yaml(zones: dict[str, list[Record]], provider: str) -> str:
    """Return YAML representation of the zones."""
    return yaml.safe_dump(zones_to_dict(zones, provider), sort_keys=False)


def zones_to_json(zones: dict[str, list[Record]], provider: str) -> str:
    """Return JSON representation of the zones."""
    return json.dumps(zones_to_dict(zones, provider), indent=2)


def write_export(path: Path, content: str) -> None:
    """Write content to the given path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
