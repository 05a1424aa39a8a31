"""NO_PURGE, UNMANAGED, ENSURE_ABSENT and external-dns protections.

Rather than teaching the diff engine which records to leave alone, every
existing record that must survive is appended to the desired list.  The
diff then sees it on both sides and emits nothing for it.

* UNMANAGED: existing records matching a label/type/target glob are
  "ignored" and copied to desired.
* NO_PURGE: existing records with no desired record at the same label and
  type are "foreign" and copied to desired, unless listed in ENSURE_ABSENT.
* external-dns: records owned by an external-dns registry TXT are copied
  to desired, except where the user declares the same label and type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .externaldns import external_dns_records
from .models import ConflictError, Record, UnmanagedConfig

LOG = logging.getLogger("zonectl")

MAX_REPORT = 10


@dataclass
class HandsOffResult:
    """Outcome of the hands-off pass for one zone."""

    desired: list[Record]
    ignored: list[Record] = field(default_factory=list)
    foreign: list[Record] = field(default_factory=list)
    external: list[Record] = field(default_factory=list)
    msgs: list[str] = field(default_factory=list)


def matches_any(unmanaged: list[UnmanagedConfig], record: Record) -> bool:
    """Return True if any UNMANAGED pattern covers ``record``."""
    return any(config.matches(record) for config in unmanaged)


def report_skips(records: list[Record], full: bool = False) -> list[str]:
    """Format skipped records, truncated unless ``full``."""
    shorten = not full and len(records) > MAX_REPORT
    shown = records[:MAX_REPORT] if shorten else records
    lines = [f"    {r.name_fqdn}. {r.type} {r.rdata.to_text()}" for r in shown]
    if shorten:
        lines.append(f"    ...and {len(records) - MAX_REPORT} more... (use --full to show all)")
    return lines


def _classify(
    existing: list[Record],
    desired: list[Record],
    absences: list[Record],
    unmanaged: list[UnmanagedConfig],
    no_purge: bool,
) -> tuple[list[Record], list[Record]]:
    """Split existing records into ignored and foreign."""
    desired_keys = {record.key() for record in desired}
    absent = {(record.key(), record.comparable()) for record in absences}
    ignored: list[Record] = []
    foreign: list[Record] = []
    for record in existing:
        if matches_any(unmanaged, record):
            ignored.append(record)
        elif no_purge and record.key() not in desired_keys and (record.key(), record.comparable()) not in absent:
            foreign.append(record)
    return ignored, foreign


def handsoff(
    domain: str,
    existing: list[Record],
    desired: list[Record],
    absences: list[Record] | None = None,
    unmanaged: list[UnmanagedConfig] | None = None,
    no_purge: bool = False,
    ignore_external_dns: bool = False,
    external_dns_prefix: str = "",
    unmanaged_safety_check: bool = True,
    full_report: bool = False,
) -> HandsOffResult:
    """Return the desired list extended with every record that must survive.

    Raises ConflictError when desired records also match an UNMANAGED
    pattern and the safety check is enabled.
    """
    absences = absences or []
    unmanaged = [config.compile() for config in unmanaged or []]
    msgs: list[str] = []

    external: list[Record] = []
    if ignore_external_dns:
        external = external_dns_records(existing, external_dns_prefix)
        if external:
            msgs.append(f"{len(external)} records not being deleted because of IGNORE_EXTERNAL_DNS:")
            msgs.extend(report_skips(external, full_report))

    ignored, foreign = _classify(existing, desired, absences, unmanaged, no_purge)
    if foreign:
        msgs.append(f"{len(foreign)} records not being deleted because of NO_PURGE:")
        msgs.extend(report_skips(foreign, full_report))
    if ignored:
        msgs.append(f"{len(ignored)} records not being deleted because of UNMANAGED:")
        msgs.extend(report_skips(ignored, full_report))

    conflicts = [record for record in desired if matches_any(unmanaged, record)]
    if conflicts:
        if unmanaged_safety_check:
            raise ConflictError(domain, conflicts)
        msgs.append(f"WARNING: {len(conflicts)} records that are both UNMANAGED and not ignored:")
        msgs.extend(f"    {r.name_fqdn} {r.type} {r.rdata.to_text()}" for r in conflicts)
        LOG.warning("%s: %d desired records match UNMANAGED patterns", domain, len(conflicts))

    if external:
        declared = {(record.label, record.type) for record in desired}
        overlapping = [r for r in external if (r.label, r.type) in declared]
        if overlapping:
            msgs.append(
                f"WARNING: {len(overlapping)} records are defined in your config but also managed by external-dns:"
            )
            msgs.extend(f"    {r.name_fqdn} {r.type} {r.rdata.to_text()}" for r in overlapping)
            msgs.append("Consider removing these from your config or from external-dns to avoid conflicts.")
            external = [r for r in external if (r.label, r.type) not in declared]
        ignored.extend(r for r in external if r not in ignored)

    merged = list(desired)
    seen = {(record.key(), record.comparable()) for record in merged}
    for record in ignored + foreign + external:
        identity = (record.key(), record.comparable())
        if identity in seen:
            continue
        seen.add(identity)
        merged.append(record)

    return HandsOffResult(desired=merged, ignored=ignored, foreign=foreign, external=external, msgs=msgs)
