"""Diff utilities for DNS zones.

Three granularities are offered, matching what provider APIs accept:

* ``by_record``: one change per record created, deleted or modified.
* ``by_record_set``: one change per (label, type) RRset that differs.
* ``by_zone``: report lines plus one change carrying the whole zone.
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from .models import ComparableFunc, Record, RecordKey

LOG = logging.getLogger("zonectl")

TYPE_ORDER = ["SOA", "NS", "CNAME", "A", "AAAA", "MX", "SRV", "TXT"]


class ChangeType(enum.IntEnum):
    """Kinds of change, in the order they are emitted."""

    REPORT = 0
    DELETE = 1
    CREATE = 2
    CHANGE = 3


@dataclass
class Change:
    """One unit of work produced by the diff engine."""

    type: ChangeType
    key: RecordKey
    label: str
    old: list[Record] = field(default_factory=list)
    new: list[Record] = field(default_factory=list)
    msgs: list[str] = field(default_factory=list)
    depends_on: frozenset[str] = frozenset()
    provides: frozenset[str] = frozenset()

    @property
    def msg(self) -> str:
        return "\n".join(self.msgs)


def _label_component(part: str) -> tuple:
    if part == "*":
        return (-1, "")
    if part.isdigit():
        return (0, int(part), part)
    return (1, part)


def label_sort_key(label: str) -> tuple:
    """Sort labels apex first, wildcard next, then by reversed components."""
    if label == "@":
        return (0,)
    if label == "*":
        return (1,)
    return (2, tuple(_label_component(part) for part in reversed(label.split("."))))


def type_sort_key(rtype: str) -> tuple:
    """Sort types by DNS convention, unknown types alphabetically after."""
    try:
        return (TYPE_ORDER.index(rtype), rtype)
    except ValueError:
        return (len(TYPE_ORDER), rtype)


def _ttl_text(record: Record) -> str:
    return f"{record.rdata.to_text()} ttl={record.ttl}"


def _create_msg(record: Record) -> str:
    return f"+ CREATE {record.label} {record.type} {_ttl_text(record)}"


def _delete_msg(record: Record) -> str:
    return f"- DELETE {record.label} {record.type} {_ttl_text(record)}"


def _modify_msg(old: Record, new: Record) -> str:
    return f"± MODIFY {new.label} {new.type} ({_ttl_text(old)}) -> ({_ttl_text(new)})"


def _modify_ttl_msg(old: Record, new: Record) -> str:
    return f"± MODIFY-TTL {new.label} {new.type} {new.rdata.to_text()} ttl=({old.ttl}->{new.ttl})"


def _hints(change: Change) -> Change:
    """Attach dependency hints derived from the records involved."""
    if change.type in (ChangeType.CREATE, ChangeType.CHANGE):
        change.provides = frozenset(r.name_fqdn for r in change.new)
        change.depends_on = frozenset(host for r in change.new for host in r.rdata.hostnames())
    elif change.type == ChangeType.DELETE:
        # a name may only go away once nothing being deleted still points at it
        change.provides = frozenset(f"-{host}" for r in change.old for host in r.rdata.hostnames())
        change.depends_on = frozenset(f"-{r.name_fqdn}" for r in change.old)
    return change


def _group(
    existing: Iterable[Record], desired: Iterable[Record]
) -> dict[RecordKey, tuple[list[Record], list[Record]]]:
    """Index both sides by RecordKey, keeping input order."""
    groups: dict[RecordKey, tuple[list[Record], list[Record]]] = defaultdict(lambda: ([], []))
    for record in existing:
        groups[record.key()][0].append(record)
    for record in desired:
        groups[record.key()][1].append(record)
    return groups


@dataclass
class _GroupDiff:
    creates: list[Record] = field(default_factory=list)
    deletes: list[Record] = field(default_factory=list)
    modifies: list[tuple[Record, Record, str]] = field(default_factory=list)

    def empty(self) -> bool:
        return not (self.creates or self.deletes or self.modifies)

    def msgs(self) -> list[str]:
        return (
            [_delete_msg(r) for r in self.deletes]
            + [_create_msg(r) for r in self.creates]
            + [msg for _, _, msg in self.modifies]
        )


def _take(pool: list[tuple[str, Record]], wanted: str, ttl: int | None = None) -> Record | None:
    """Remove and return the first pooled record with comparable ``wanted``."""
    for index, (comparable, record) in enumerate(pool):
        if comparable == wanted and (ttl is None or record.ttl == ttl):
            del pool[index]
            return record
    return None


def _diff_group(existing: list[Record], desired: list[Record], extra: ComparableFunc | None) -> _GroupDiff:
    """Pair records of one RRset."""
    result = _GroupDiff()
    pool = [(r.comparable(extra), r) for r in existing]

    leftover: list[tuple[str, Record]] = []
    for record in desired:
        comparable = record.comparable(extra)
        if _take(pool, comparable, record.ttl) is None:
            leftover.append((comparable, record))

    unpaired: list[tuple[str, Record]] = []
    for comparable, record in leftover:
        old = _take(pool, comparable)
        if old is None:
            unpaired.append((comparable, record))
        else:
            result.modifies.append((old, record, _modify_ttl_msg(old, record)))

    remaining_old = sorted(pool, key=lambda item: item[0])
    remaining_new = sorted(unpaired, key=lambda item: item[0])
    for (_, old), (_, new) in zip(remaining_old, remaining_new):
        result.modifies.append((old, new, _modify_msg(old, new)))
    result.deletes = [record for _, record in remaining_old[len(remaining_new):]]
    result.creates = [record for _, record in remaining_new[len(remaining_old):]]
    return result


def _sorted(changes: list[Change]) -> list[Change]:
    return sorted(changes, key=lambda c: (c.type, label_sort_key(c.label), type_sort_key(c.key.type)))


def by_record(
    existing: list[Record], desired: list[Record], extra: ComparableFunc | None = None
) -> list[Change]:
    """Return one change per record that must be created, deleted or modified."""
    changes: list[Change] = []
    for key, (old_records, new_records) in _group(existing, desired).items():
        group = _diff_group(old_records, new_records, extra)
        for record in group.deletes:
            changes.append(_hints(Change(ChangeType.DELETE, key, record.label, old=[record], msgs=[_delete_msg(record)])))
        for record in group.creates:
            changes.append(_hints(Change(ChangeType.CREATE, key, record.label, new=[record], msgs=[_create_msg(record)])))
        for old, new, msg in group.modifies:
            changes.append(_hints(Change(ChangeType.CHANGE, key, new.label, old=[old], new=[new], msgs=[msg])))
    return _sorted(changes)


def _unify_ttls(key: RecordKey, records: list[Record]) -> list[Record]:
    """Give every record of an RRset the lowest TTL among them."""
    ttls = {record.ttl for record in records}
    if len(ttls) <= 1:
        return records
    lowest = min(ttls)
    LOG.warning("%s has multiple TTLs %s; using %d", key, sorted(ttls), lowest)
    unified = []
    for record in records:
        copy = record.copy()
        copy.ttl = lowest
        unified.append(copy)
    return unified


def by_record_set(
    existing: list[Record], desired: list[Record], extra: ComparableFunc | None = None
) -> list[Change]:
    """Return one change per RRset that differs, carrying the whole set."""
    changes: list[Change] = []
    for key, (old_records, new_records) in _group(existing, desired).items():
        new_records = _unify_ttls(key, new_records)
        group = _diff_group(old_records, new_records, extra)
        if group.empty():
            continue
        label = (new_records or old_records)[0].label
        if not old_records:
            kind = ChangeType.CREATE
        elif not new_records:
            kind = ChangeType.DELETE
        else:
            kind = ChangeType.CHANGE
        changes.append(
            _hints(Change(kind, key, label, old=list(old_records), new=list(new_records), msgs=group.msgs()))
        )
    return _sorted(changes)


def by_zone(
    existing: list[Record], desired: list[Record], origin: str, extra: ComparableFunc | None = None
) -> list[Change]:
    """Return report lines followed by one change holding the full zone."""
    key = RecordKey(origin, "ZONE")
    if not existing:
        if not desired:
            return []
        return [
            Change(ChangeType.REPORT, key, "@", msgs=[f"writing new zone {origin}"]),
            Change(ChangeType.CHANGE, key, "@", new=list(desired), msgs=[f"write zone {origin} ({len(desired)} records)"]),
        ]
    record_changes = by_record(existing, desired, extra)
    if not record_changes:
        return []
    reports = [Change(ChangeType.REPORT, c.key, c.label, msgs=list(c.msgs)) for c in record_changes]
    count = sum(len(c.msgs) for c in record_changes)
    return reports + [
        Change(
            ChangeType.CHANGE,
            key,
            "@",
            old=list(existing),
            new=list(desired),
            msgs=[f"write zone {origin} ({count} changes)"],
        )
    ]
