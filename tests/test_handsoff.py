"""Tests for the NO_PURGE / UNMANAGED / ENSURE_ABSENT / external-dns layer."""

import pytest

from zonectl.diffing import ChangeType, by_record
from zonectl.handsoff import MAX_REPORT, handsoff, report_skips
from zonectl.models import ConflictError, UnmanagedConfig, new_record

ZONE = "example.com"


def _rec(label, rtype, text, ttl=300):
    return new_record(label, rtype, text, ZONE, ttl=ttl)


def _plan(existing, desired, **kwargs):
    result = handsoff(ZONE, existing, desired, **kwargs)
    return result, by_record(existing, result.desired)


class TestNoPurge:
    def test_protects_existing(self):
        existing = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2"), _rec("foo3", "A", "3.3.3.3")]
        desired = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2")]
        result, changes = _plan(existing, desired, no_purge=True)
        assert changes == []
        assert [r.label for r in result.foreign] == ["foo3"]
        assert result.msgs[0] == "1 records not being deleted because of NO_PURGE:"

    def test_same_key_is_not_foreign(self):
        existing = [_rec("foo", "A", "1.1.1.1")]
        desired = [_rec("foo", "A", "2.2.2.2")]
        result, changes = _plan(existing, desired, no_purge=True)
        assert result.foreign == []
        assert [c.type for c in changes] == [ChangeType.CHANGE]

    def test_ensure_absent_wins(self):
        existing = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2"), _rec("foo3", "A", "3.3.3.3")]
        desired = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2")]
        result, changes = _plan(existing, desired, absences=[_rec("foo3", "A", "3.3.3.3")], no_purge=True)
        assert [(c.type, c.label) for c in changes] == [(ChangeType.DELETE, "foo3")]

    def test_ensure_absent_without_no_purge(self):
        existing = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2"), _rec("foo3", "A", "3.3.3.3")]
        desired = [_rec("foo1", "A", "1.1.1.1"), _rec("foo2", "A", "2.2.2.2")]
        _, changes = _plan(existing, desired, absences=[_rec("foo3", "A", "3.3.3.3")])
        assert [(c.type, c.label) for c in changes] == [(ChangeType.DELETE, "foo3")]

    def test_without_no_purge_deletes(self):
        existing = [_rec("foo3", "A", "3.3.3.3")]
        _, changes = _plan(existing, [])
        assert [c.type for c in changes] == [ChangeType.DELETE]


class TestUnmanaged:
    def test_label_keeps_all_types(self):
        existing = [_rec("foo3", "A", "3.3.3.3"), _rec("foo3", "MX", "10 mymx.example.com.")]
        result, changes = _plan(existing, [], unmanaged=[UnmanagedConfig("foo3", "*", "*")])
        assert changes == []
        assert len(result.ignored) == 2
        assert result.msgs[0] == "2 records not being deleted because of UNMANAGED:"

    def test_target_glob(self):
        existing = [_rec("_x.cr", "CNAME", "_y.acm-validations.aws.")]
        result, changes = _plan(existing, [], unmanaged=[UnmanagedConfig("*", "CNAME", "**.acm-validations.aws.")])
        assert changes == []
        assert len(result.ignored) == 1

    def test_type_mismatch_is_not_ignored(self):
        existing = [_rec("foo", "A", "3.3.3.3")]
        _, changes = _plan(existing, [], unmanaged=[UnmanagedConfig("foo", "MX", "*")])
        assert [c.type for c in changes] == [ChangeType.DELETE]

    def test_conflict_raises_with_safety_check(self):
        desired = [_rec("foo", "A", "1.1.1.1")]
        with pytest.raises(ConflictError):
            handsoff(ZONE, [], desired, unmanaged=[UnmanagedConfig("foo", "*", "*")])

    def test_conflict_warns_without_safety_check(self):
        desired = [_rec("foo", "A", "1.1.1.1")]
        result = handsoff(
            ZONE, [], desired, unmanaged=[UnmanagedConfig("foo", "*", "*")], unmanaged_safety_check=False
        )
        assert result.msgs[0].startswith("WARNING: 1 records that are both UNMANAGED")
        assert result.desired == desired


class TestExternalDNS:
    def test_registry_and_managed_are_kept(self):
        existing = [
            _rec("a-myapp", "TXT", '"heritage=external-dns,external-dns/owner=default"'),
            _rec("myapp", "A", "10.0.0.1"),
            _rec("other", "A", "10.0.0.2"),
        ]
        result, changes = _plan(existing, [], ignore_external_dns=True)
        assert {r.label for r in result.external} == {"a-myapp", "myapp"}
        assert [(c.type, c.label) for c in changes] == [(ChangeType.DELETE, "other")]
        assert result.msgs[0] == "2 records not being deleted because of IGNORE_EXTERNAL_DNS:"

    def test_declared_records_win(self):
        existing = [
            _rec("a-myapp", "TXT", '"heritage=external-dns,external-dns/owner=default"'),
            _rec("myapp", "A", "10.0.0.1"),
        ]
        desired = [_rec("myapp", "A", "10.0.0.9")]
        result, changes = _plan(existing, desired, ignore_external_dns=True)
        assert any("also managed by external-dns" in msg for msg in result.msgs)
        assert [c.type for c in changes] == [ChangeType.CHANGE]

    def test_disabled(self):
        existing = [_rec("a-myapp", "TXT", '"heritage=external-dns"'), _rec("myapp", "A", "10.0.0.1")]
        _, changes = _plan(existing, [])
        assert len(changes) == 2


class TestReportSkips:
    def test_truncates(self):
        records = [_rec(f"h{i}", "A", "1.1.1.1") for i in range(MAX_REPORT + 3)]
        lines = report_skips(records)
        assert len(lines) == MAX_REPORT + 1
        assert lines[-1] == "    ...and 3 more... (use --full to show all)"

    def test_full(self):
        records = [_rec(f"h{i}", "A", "1.1.1.1") for i in range(MAX_REPORT + 3)]
        assert len(report_skips(records, full=True)) == MAX_REPORT + 3
