"""Tests for the core data model."""

from zonectl.models import (
    ConflictError,
    DNSConfig,
    DomainConfig,
    ProviderConfigError,
    RecordKey,
    UnmanagedConfig,
    fqdn_for_label,
    label_for_fqdn,
    new_record,
)


class TestNames:
    def test_fqdn_for_label(self):
        assert fqdn_for_label("@", "example.com.") == "example.com"
        assert fqdn_for_label("WWW", "example.com") == "www.example.com"

    def test_label_for_fqdn(self):
        assert label_for_fqdn("example.com.", "example.com") == "@"
        assert label_for_fqdn("a.b.example.com", "example.com") == "a.b"
        assert label_for_fqdn("other.net", "example.com") == "other.net"


class TestRecord:
    def test_new_record_derives_names(self):
        record = new_record("www", "cname", "web", "example.com", ttl=60)
        assert record.type == "CNAME"
        assert record.name_fqdn == "www.example.com"
        assert record.key() == RecordKey("www.example.com", "CNAME")
        assert record.describe() == "www CNAME web.example.com."
        assert str(record) == "www CNAME web.example.com. ttl=60"

    def test_comparable_excludes_ttl(self):
        one = new_record("@", "A", "1.2.3.4", "example.com", ttl=60)
        two = new_record("@", "A", "1.2.3.4", "example.com", ttl=300)
        assert one.comparable() == two.comparable()

    def test_comparable_extra(self):
        record = new_record("@", "A", "1.2.3.4", "example.com", metadata={"proxy": "on"})
        assert record.comparable(lambda r: f"proxy={r.metadata['proxy']}") == "1.2.3.4 proxy=on"

    def test_copy_has_own_metadata(self):
        record = new_record("@", "A", "1.2.3.4", "example.com", metadata={"k": "v"})
        copy = record.copy()
        copy.metadata["k"] = "changed"
        assert record.metadata["k"] == "v"


class TestUnmanagedConfig:
    def test_star_crosses_dots(self):
        config = UnmanagedConfig("*.test", "", "")
        assert config.matches(new_record("a.b.test", "A", "1.2.3.4", "example.com"))

    def test_type_list(self):
        config = UnmanagedConfig("*", "A, cname", "*")
        assert config.matches_type("A")
        assert config.matches_type("CNAME")
        assert not config.matches_type("MX")

    def test_target_uses_dotted_form(self):
        config = UnmanagedConfig("*", "CNAME", "*.cdn.net.")
        assert config.matches(new_record("www", "CNAME", "x.cdn.net.", "example.com"))
        assert not config.matches(new_record("www", "CNAME", "x.other.net.", "example.com"))

    def test_question_mark_is_one_char(self):
        config = UnmanagedConfig("host?", "*", "*")
        assert config.matches_label("host1")
        assert not config.matches_label("host12")

    def test_str(self):
        assert str(UnmanagedConfig("", "A", "")) == "UNMANAGED(*, A, *)"


class TestDomainConfig:
    def test_copy_is_independent(self):
        domain = DomainConfig(name="example.com", records=[new_record("@", "A", "1.2.3.4", "example.com")])
        copy = domain.copy()
        copy.records[0].ttl = 999
        copy.records.append(new_record("www", "A", "1.2.3.5", "example.com"))
        assert domain.records[0].ttl == 0
        assert len(domain.records) == 1

    def test_has_record(self):
        domain = DomainConfig(name="example.com", records=[new_record("www", "A", "1.2.3.4", "example.com")])
        assert domain.has_record("A", "www.example.com")
        assert not domain.has_record("AAAA", "www.example.com")


class TestDNSConfig:
    def test_select(self):
        config = DNSConfig(domains=[DomainConfig(name="a.com"), DomainConfig(name="b.com")])
        assert [d.name for d in config.select([])] == ["a.com", "b.com"]
        assert [d.name for d in config.select(["B.com."])] == ["b.com"]
        assert config.find_domain("a.com.").name == "a.com"
        assert config.find_domain("c.com") is None


class TestErrors:
    def test_provider_config_error_lists_keys(self):
        exc = ProviderConfigError("r53", ["KeyId", "SecretKey"])
        assert "KeyId, SecretKey" in str(exc)

    def test_conflict_error_message(self):
        exc = ConflictError("example.com", [new_record("www", "A", "1.2.3.4", "example.com")])
        assert "www A 1.2.3.4" in str(exc)
        assert "Unsafe to continue" in str(exc)
