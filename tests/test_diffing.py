"""Tests for the diff engine."""

from zonectl.diffing import ChangeType, by_record, by_record_set, by_zone, label_sort_key, type_sort_key
from zonectl.models import new_record

ZONE = "example.com"


def _rec(label, rtype, text, ttl=300):
    return new_record(label, rtype, text, ZONE, ttl=ttl)


# --- by_record ---

class TestByRecord:
    def test_pure_create(self):
        changes = by_record([], [_rec("www", "A", "1.2.3.4")])
        assert len(changes) == 1
        assert changes[0].type == ChangeType.CREATE
        assert "www A 1.2.3.4" in changes[0].msg

    def test_pure_delete(self):
        changes = by_record([_rec("www", "A", "1.2.3.4")], [])
        assert [c.type for c in changes] == [ChangeType.DELETE]
        assert changes[0].msg == "- DELETE www A 1.2.3.4 ttl=300"

    def test_identical_is_empty(self):
        existing = [_rec("www", "A", "1.2.3.4"), _rec("@", "MX", "10 mx.example.com.")]
        desired = [_rec("www", "A", "1.2.3.4"), _rec("@", "MX", "10 mx")]
        assert by_record(existing, desired) == []

    def test_ttl_only_is_modify_ttl(self):
        changes = by_record([_rec("www", "A", "1.2.3.4", ttl=300)], [_rec("www", "A", "1.2.3.4", ttl=600)])
        assert [c.type for c in changes] == [ChangeType.CHANGE]
        assert changes[0].msg == "± MODIFY-TTL www A 1.2.3.4 ttl=(300->600)"

    def test_content_change_is_modify(self):
        changes = by_record([_rec("www", "A", "1.2.3.4")], [_rec("www", "A", "5.6.7.8")])
        assert [c.type for c in changes] == [ChangeType.CHANGE]
        assert changes[0].msg.startswith("± MODIFY www A (1.2.3.4 ttl=300) -> (5.6.7.8 ttl=300)")

    def test_extra_records_in_set(self):
        existing = [_rec("www", "A", "1.1.1.1")]
        desired = [_rec("www", "A", "1.1.1.1"), _rec("www", "A", "2.2.2.2")]
        changes = by_record(existing, desired)
        assert [(c.type, c.new[0].rdata.to_text()) for c in changes] == [(ChangeType.CREATE, "2.2.2.2")]

    def test_deletes_come_before_creates(self):
        existing = [_rec("old", "A", "1.1.1.1")]
        desired = [_rec("new", "A", "2.2.2.2")]
        assert [c.type for c in by_record(existing, desired)] == [ChangeType.DELETE, ChangeType.CREATE]

    def test_comparable_extra_folds_metadata(self):
        existing = [_rec("www", "A", "1.2.3.4")]
        desired = [_rec("www", "A", "1.2.3.4")]
        desired[0].metadata["proxy"] = "on"
        changes = by_record(existing, desired, extra=lambda r: r.metadata.get("proxy", ""))
        assert [c.type for c in changes] == [ChangeType.CHANGE]

    def test_cname_create_depends_on_target(self):
        changes = by_record([], [_rec("www", "CNAME", "app"), _rec("app", "A", "1.1.1.1")])
        cname = next(c for c in changes if c.key.type == "CNAME")
        assert cname.depends_on == frozenset({"app.example.com"})
        host = next(c for c in changes if c.key.type == "A")
        assert host.provides == frozenset({"app.example.com"})


# --- by_record_set ---

class TestByRecordSet:
    def test_one_change_per_set(self):
        existing = [_rec("www", "A", "1.1.1.1")]
        desired = [_rec("www", "A", "1.1.1.1"), _rec("www", "A", "2.2.2.2")]
        changes = by_record_set(existing, desired)
        assert len(changes) == 1
        assert changes[0].type == ChangeType.CHANGE
        assert len(changes[0].new) == 2

    def test_unchanged_set_is_skipped(self):
        records = [_rec("www", "A", "1.1.1.1")]
        assert by_record_set(records, [_rec("www", "A", "1.1.1.1")]) == []

    def test_ttls_are_unified(self):
        desired = [_rec("www", "A", "1.1.1.1", ttl=600), _rec("www", "A", "2.2.2.2", ttl=300)]
        changes = by_record_set([], desired)
        assert {r.ttl for r in changes[0].new} == {300}
        assert desired[0].ttl == 600

    def test_delete_set(self):
        changes = by_record_set([_rec("www", "A", "1.1.1.1")], [])
        assert changes[0].type == ChangeType.DELETE


# --- by_zone ---

class TestByZone:
    def test_new_zone(self):
        changes = by_zone([], [_rec("www", "A", "1.1.1.1")], ZONE)
        assert [c.type for c in changes] == [ChangeType.REPORT, ChangeType.CHANGE]
        assert changes[0].msg == "writing new zone example.com"

    def test_reports_then_single_write(self):
        existing = [_rec("www", "A", "1.1.1.1")]
        desired = [_rec("www", "A", "2.2.2.2"), _rec("api", "A", "3.3.3.3")]
        changes = by_zone(existing, desired, ZONE)
        assert [c.type for c in changes[:-1]] == [ChangeType.REPORT, ChangeType.REPORT]
        assert changes[-1].msg == "write zone example.com (2 changes)"
        assert changes[-1].new == desired

    def test_no_changes(self):
        records = [_rec("www", "A", "1.1.1.1")]
        assert by_zone(records, [_rec("www", "A", "1.1.1.1")], ZONE) == []


# --- sorting ---

class TestSortKeys:
    def test_labels(self):
        labels = ["www", "*", "@", "a.www", "10", "2"]
        assert sorted(labels, key=label_sort_key) == ["@", "*", "2", "10", "www", "a.www"]

    def test_types(self):
        assert sorted(["TXT", "A", "CAA", "SOA", "NS"], key=type_sort_key) == ["SOA", "NS", "A", "TXT", "CAA"]
