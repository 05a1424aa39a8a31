"""Dependency ordering of changes and RFC 2136 batching rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, TypeVar

from .diffing import Change, ChangeType
from .models import Record, new_record

LOG = logging.getLogger("zonectl")

SENTINEL_NS = "255.255.255.255."


class Hinted(Protocol):
    depends_on: frozenset[str]
    provides: frozenset[str]


T = TypeVar("T", bound=Hinted)


def order_by_dependencies(items: Sequence[T]) -> list[T]:
    """Order items so that providers of a name come before its users.

    Names no item provides are treated as already satisfied.  When a pass
    makes no progress the first blocked item is logged and the rest are
    appended in input order.
    """
    provided = {name for item in items for name in item.provides}
    pending = list(items)
    resolved: set[str] = set()
    ordered: list[T] = []

    def blockers(item: T) -> set[str]:
        return (set(item.depends_on) & provided) - resolved - set(item.provides)

    while pending:
        ready = [item for item in pending if not blockers(item)]
        if not ready:
            first = pending[0]
            LOG.warning(
                "dependency cycle or unresolved reference: %s waits on %s",
                getattr(first, "msg", first),
                ", ".join(sorted(blockers(first))),
            )
            ordered.extend(pending)
            break
        ready_ids = {id(item) for item in ready}
        pending = [item for item in pending if id(item) not in ready_ids]
        for item in ready:
            ordered.append(item)
        # names are resolved only once every provider of them has run
        still_provided = {name for item in pending for name in item.provides}
        resolved |= {name for item in ready for name in item.provides} - still_provided
    return ordered


@dataclass
class UpdateOp:
    """One RFC 2136 prerequisite-free operation."""

    action: str
    record: Record

    def describe(self) -> str:
        verb = "insert" if self.action == "add" else "remove"
        return f"{verb} {self.record.describe()}"


def _is_apex_ns(record: Record, origin: str) -> bool:
    return record.type == "NS" and record.name_fqdn == origin.rstrip(".").lower()


def rfc2136_operations(changes: Sequence[Change], origin: str, no_last_ns: bool = False) -> list[UpdateOp]:
    """Flatten changes into removals followed by insertions.

    With ``no_last_ns`` the apex NS edits are wrapped in the insertion and
    final removal of a sentinel NS, so the zone never loses its last NS.
    """
    removes: list[UpdateOp] = []
    adds: list[UpdateOp] = []
    for change in changes:
        if change.type == ChangeType.REPORT:
            continue
        removes.extend(UpdateOp("delete", record) for record in change.old)
        adds.extend(UpdateOp("add", record) for record in change.new)
    ops = removes + adds
    if no_last_ns and any(_is_apex_ns(op.record, origin) for op in ops):
        ttl = next(op.record.ttl for op in ops if _is_apex_ns(op.record, origin))
        sentinel = new_record("@", "NS", SENTINEL_NS, origin, ttl=ttl)
        ops = [UpdateOp("add", sentinel)] + ops + [UpdateOp("delete", sentinel)]
    return ops


def _is_sentinel(op: UpdateOp) -> bool:
    return op.record.type == "NS" and op.record.rdata.to_text() == SENTINEL_NS


def split_buggy_cname(ops: list[UpdateOp]) -> list[list[UpdateOp]]:
    """Split a batch when a CNAME is created at a name that also loses records.

    Some servers reject a CNAME insert that shares an update message with the
    deletion of another type at the same name.
    """
    removed_names = {op.record.name_fqdn for op in ops if op.action == "delete"}
    if any(op.action == "add" and op.record.type == "CNAME" and op.record.name_fqdn in removed_names for op in ops):
        head = ops[:1] if ops and _is_sentinel(ops[0]) else []
        tail = ops[-1:] if len(ops) > 1 and _is_sentinel(ops[-1]) else []
        inner = ops[len(head) : len(ops) - len(tail)]
        removes = head + [op for op in inner if op.action == "delete"]
        adds = [op for op in inner if op.action == "add"] + tail
        return [batch for batch in (removes, adds) if batch]
    return [ops] if ops else []
