"""Render zone files via Jinja2 templates."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .diffing import label_sort_key, type_sort_key
from .models import Record
from .rdata import SOA

TEMPLATES_DIR = Path(__file__).parent / "templates"


@dataclass
class RenderResult:
    """Holds rendered zone text and destination path."""

    text: str
    output_path: Path


def suggest_serial(strategy: str, current_serial: int | None) -> int:
    """Return a serial number that satisfies the chosen strategy."""
    if strategy == "epoch":
        candidate = int(time.time())
    else:
        candidate = int(datetime.now(tz=timezone.utc).strftime("%Y%m%d00"))
    if current_serial is None:
        return candidate
    while candidate <= current_serial:
        candidate += 1
    return candidate


def _record_to_template_data(record: Record) -> dict[str, str | int]:
    """Convert a record into template-friendly data."""
    return {
        "owner": record.label,
        "ttl": record.ttl,
        "type": record.type,
        "value": record.rdata.to_text(),
    }


def sort_records(records: list[Record]) -> list[Record]:
    """Order records the way zone files are conventionally written."""
    return sorted(
        records,
        key=lambda r: (label_sort_key(r.label), type_sort_key(r.type), r.comparable()),
    )


def render_zone(
    origin: str,
    records: list[Record],
    soa: SOA,
    output_path: Path,
    default_ttl: int = 300,
    template_name: str = "zone.j2",
    templates_dir: Path = TEMPLATES_DIR,
) -> RenderResult:
    """Render a zone file; SOA records in ``records`` are replaced by ``soa``."""
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template(template_name)
    data = [_record_to_template_data(record) for record in sort_records(records) if record.type != "SOA"]
    width = max([len(item["owner"]) for item in data] + [1])
    text = template.render(
        origin=origin.rstrip(".") + ".",
        default_ttl=default_ttl,
        soa=soa,
        records=data,
        width=width,
    )
    return RenderResult(text=text.strip() + "\n", output_path=output_path)


def write_zone_file(result: RenderResult) -> None:
    """Persist the rendered zone file."""
    result.output_path.parent.mkdir(parents=True, exist_ok=True)
    result.output_path.write_text(result.text, encoding="utf-8")
