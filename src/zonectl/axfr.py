"""AXFR and dynamic update helpers built on dnspython."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .config import TsigKey
from .models import FatalAPIError, ProviderError, Record, TransientAPIError, label_for_fqdn
from .rdata import TXT, parse_rdata

LOG = logging.getLogger("zonectl")

DNSSEC_TYPES = {"DNSKEY", "RRSIG", "NSEC", "NSEC3", "NSEC3PARAM", "CDS", "CDNSKEY"}


def _keyring(key: TsigKey | None) -> dict[str, Any]:
    """Return keyword arguments for TSIG signing."""
    if key is None:
        return {}
    import dns.tsigkeyring

    return {
        "keyring": dns.tsigkeyring.from_text({key.name: key.secret}),
        "keyname": key.name,
        "keyalgorithm": key.algorithm,
    }


def zone_to_records(zone: Any, origin: str) -> list[Record]:
    """Convert a dnspython zone (absolute names) into records."""
    import dns.rdatatype

    records: list[Record] = []
    for name, ttl, rdata in zone.iterate_rdatas():
        rtype = dns.rdatatype.to_text(rdata.rdtype)
        if rtype == "TXT":
            data = TXT(segments=tuple(s.decode("utf-8", "replace") for s in rdata.strings))
        else:
            data = parse_rdata(rtype, rdata.to_text()).with_origin(origin)
        record = Record(label="@", type=rtype, rdata=data, ttl=ttl, original=rdata)
        record.set_label(label_for_fqdn(name.to_text(), origin), origin)
        records.append(record)
    return records


def fetch_zone_records(
    zone_name: str, server: str, port: int = 53, key: TsigKey | None = None, timeout: float = 10.0
) -> list[Record]:
    """Return the current records of a zone via AXFR."""
    import dns.exception
    import dns.query
    import dns.zone

    try:
        xfr = dns.query.xfr(
            where=server,
            zone=zone_name,
            port=port,
            relativize=False,
            timeout=timeout,
            lifetime=timeout * 3,
            **_keyring(key),
        )
        zone = dns.zone.from_xfr(xfr, relativize=False)
    except dns.exception.Timeout as exc:
        raise TransientAPIError(f"AXFR of {zone_name} from {server} timed out") from exc
    except OSError as exc:
        raise TransientAPIError(f"AXFR of {zone_name} from {server} failed: {exc}") from exc
    except dns.exception.DNSException as exc:
        if "NOTAUTH" in str(exc) or "REFUSED" in str(exc):
            raise FatalAPIError(f"AXFR of {zone_name} refused by {server}: {exc}") from exc
        raise ProviderError(f"AXFR failed for zone {zone_name}: {exc}") from exc
    return zone_to_records(zone, zone_name)


def send_update(
    zone_name: str,
    operations: Iterable[tuple[str, Record]],
    server: str,
    port: int = 53,
    key: TsigKey | None = None,
    timeout: float = 10.0,
) -> None:
    """Send one RFC 2136 update message with the given (action, record) pairs."""
    import dns.exception
    import dns.query
    import dns.rcode
    import dns.rdata
    import dns.rdataclass
    import dns.update

    update = dns.update.Update(zone_name + ".", **_keyring(key))
    count = 0
    for action, record in operations:
        owner = record.name_fqdn + "."
        rdata = dns.rdata.from_text(dns.rdataclass.IN, record.type, record.rdata.to_text())
        if action == "add":
            update.add(owner, record.ttl, rdata)
        else:
            update.delete(owner, rdata)
        count += 1

    LOG.info("Sending dynamic update for %s with %d operations", zone_name, count)
    try:
        response = dns.query.tcp(update, server, port=port, timeout=timeout)
    except (dns.exception.Timeout, OSError) as exc:
        raise TransientAPIError(f"dynamic update of {zone_name} via {server} failed: {exc}") from exc
    rcode = response.rcode()
    if rcode in (dns.rcode.NOTAUTH, dns.rcode.REFUSED):
        raise FatalAPIError(f"Dynamic update refused with rcode {dns.rcode.to_text(rcode)}")
    if rcode != dns.rcode.NOERROR:
        raise ProviderError(f"Dynamic update failed with rcode {dns.rcode.to_text(rcode)}")
