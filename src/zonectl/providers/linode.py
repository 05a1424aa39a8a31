"""Linode DNS manager via the v4 REST API."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import requests
from pydantic import Field

from ..diffing import ChangeType
from ..models import (
    AuthenticationError,
    Correction,
    DomainConfig,
    ProviderError,
    RateLimitedError,
    Record,
    TransientAPIError,
    ZoneNotFoundError,
)
from ..rdata import CAA, parse_rdata
from ..retry import api_call
from .base import Capability, DNSProvider, Granularity, ProviderCredentials, correction_for, parse_credentials

LOG = logging.getLogger("zonectl")

DEFAULT_BASE_URL = "https://api.linode.com/v4/"
ALLOWED_TTLS = [0, 300, 3600, 7200, 14400, 28800, 57600, 86400, 172800, 345600, 604800, 1209600, 2419200]
DEFAULT_NAMESERVERS = ["ns1.linode.com", "ns2.linode.com", "ns3.linode.com", "ns4.linode.com", "ns5.linode.com"]
SRV_LABEL = re.compile(r"^_(?P<service>\w+)\._(?P<protocol>\w+)$")
HOST_TYPES = {"CNAME", "MX", "NS", "SRV"}


def fix_ttl(ttl: int) -> int:
    """Round ``ttl`` up to the next value Linode accepts."""
    if ttl > ALLOWED_TTLS[-1]:
        return ALLOWED_TTLS[-1]
    for allowed in ALLOWED_TTLS:
        if allowed >= ttl:
            return allowed
    return ALLOWED_TTLS[0]


class LinodeCredentials(ProviderCredentials):
    token: str
    base_url: str = Field(default=DEFAULT_BASE_URL)


class LinodeProvider(DNSProvider):
    """Per-record updates against the Linode API."""

    TYPE_NAME = "LINODE"
    CAPABILITIES = frozenset(
        {
            Capability.CAN_GET_ZONES,
            Capability.CAN_USE_CAA,
            Capability.CAN_USE_SRV,
        }
    )
    GRANULARITY = Granularity.RECORD

    def __init__(self, name: str, creds: dict[str, str] | None = None, session: requests.Session | None = None):
        super().__init__(name, creds)
        settings = parse_credentials(LinodeCredentials, name, self.creds)
        self.base_url = settings.base_url.rstrip("/") + "/"
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {settings.token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        self._domain_index: dict[str, int] | None = None

    # --- HTTP ---

    @api_call
    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        """Issue one API call and map failures onto zonectl errors."""
        try:
            response = self._session.request(method, self.base_url + path, json=body, timeout=30)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            raise TransientAPIError(f"Linode {method} {path}: {exc}") from exc
        status = response.status_code
        if status == 200:
            return response.json() if response.content else {}
        message = f"bad status code from Linode: {status} not 200"
        try:
            errors = response.json().get("errors", [])
        except ValueError:
            errors = []
        for error in errors:
            field_name = error.get("field")
            message += f"\n- {field_name + ': ' if field_name else ''}{error.get('reason', '')}"
        if status == 429:
            raise RateLimitedError(message)
        if status in (401, 403):
            raise AuthenticationError(message)
        if status >= 500:
            raise TransientAPIError(message)
        raise ProviderError(message)

    def _paginate(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = self._request("GET", f"{path}?page={page}")
            items.extend(data.get("data", []))
            if not data.get("data") or data.get("page", 1) >= data.get("pages", 1):
                return items
            page += 1

    def _domain_id(self, zone: str) -> int:
        if self._domain_index is None:
            self._domain_index = {d["domain"].lower(): d["id"] for d in self._paginate("domains")}
        try:
            return self._domain_index[zone]
        except KeyError:
            raise ZoneNotFoundError(f"'{zone}' not a zone in Linode account") from None

    # --- provider contract ---

    def list_zones(self) -> list[str]:
        self._domain_index = {d["domain"].lower(): d["id"] for d in self._paginate("domains")}
        return sorted(self._domain_index)

    def ensure_zone_exists(self, zone: str) -> None:
        self._domain_id(zone)

    def get_nameservers(self, zone: str) -> list[str]:
        return list(DEFAULT_NAMESERVERS)

    def get_zone_records(self, zone: str, meta: dict[str, str] | None = None) -> list[Record]:
        domain_id = self._domain_id(zone)
        records = [self._to_record(zone, item) for item in self._paginate(f"domains/{domain_id}/records")]
        for nameserver in DEFAULT_NAMESERVERS:
            # always served by Linode and never returned by the API
            record = Record(label="@", type="NS", rdata=parse_rdata("NS", nameserver), original={"id": 0})
            record.set_label("@", zone)
            records.append(record)
        return records

    @staticmethod
    def _to_record(zone: str, item: dict[str, Any]) -> Record:
        rtype = item["type"]
        target = item.get("target", "")
        if rtype in HOST_TYPES:
            host = target.rstrip(".").lower()
            host = f"{host}." if host else "."
            if rtype == "MX":
                text = f"{item.get('priority', 0)} {host}"
            elif rtype == "SRV":
                text = f"{item.get('priority', 0)} {item.get('weight', 0)} {item.get('port', 0)} {host}"
            else:
                text = host
            rdata = parse_rdata(rtype, text).with_origin(zone)
        elif rtype == "CAA":
            rdata = CAA(flag=0, tag=item.get("tag", ""), value=target)
        else:
            rdata = parse_rdata(rtype, target)
        record = Record(label="@", type=rtype, rdata=rdata, ttl=item.get("ttl_sec", 0), original=item)
        record.set_label(item.get("name", "") or "@", zone)
        return record

    def _to_request(self, dc: DomainConfig, record: Record) -> dict[str, Any]:
        req: dict[str, Any] = {
            "type": record.type,
            "name": "" if record.label == "@" else record.label,
            "target": record.target().rstrip(".") if record.type in HOST_TYPES else record.target(),
            "ttl_sec": record.ttl,
            "priority": 0,
            "port": 0,
            "weight": 0,
        }
        rdata = record.rdata
        if record.type in {"A", "AAAA", "NS", "PTR", "TXT"}:
            pass
        elif record.type == "MX":
            req["priority"] = rdata.preference
            if req["target"] in {"", "."}:
                req["target"] = ""
        elif record.type == "SRV":
            match = SRV_LABEL.match(record.label)
            if match is None:
                raise ProviderError(f'SRV record must match format "_service._protocol" not {record.label}')
            req.update(
                priority=rdata.priority,
                weight=rdata.weight,
                port=rdata.port,
                service=match.group("service"),
                protocol=match.group("protocol").lower(),
                name="",
            )
        elif record.type == "CNAME":
            pass
        elif record.type == "CAA":
            req["tag"] = rdata.tag
            req["target"] = rdata.value
        else:
            raise ProviderError(f"Linode does not support {record.type} records")
        return req

    def get_zone_records_corrections(self, dc: DomainConfig, existing: list[Record]) -> list[Correction]:
        for record in dc.records:
            record.ttl = fix_ttl(record.ttl)
        zone = dc.name
        # the default nameservers cannot be edited, so they never take part in the diff
        dc.records = [r for r in dc.records if not _is_default_ns(r)]
        existing = [r for r in existing if not _is_default_ns(r)]
        corrections, changes = self.plan(dc, existing)

        for change in changes:
            if change.type == ChangeType.DELETE:
                record_id = change.old[0].original["id"]
                correction = correction_for(
                    change,
                    lambda record_id=record_id: self._request(
                        "DELETE", f"domains/{self._domain_id(zone)}/records/{record_id}"
                    ),
                )
                correction.msg = f"{change.msg}, Linode ID: {record_id}"
                corrections.append(correction)
            elif change.type == ChangeType.CREATE:
                req = self._to_request(dc, change.new[0])
                correction = correction_for(change, lambda req=req: self._create(self._domain_id(zone), req))
                correction.msg = f"{change.msg}: {json.dumps(req)}"
                corrections.append(correction)
            elif change.type == ChangeType.CHANGE:
                record_id = change.old[0].original["id"]
                req = self._to_request(dc, change.new[0])
                correction = correction_for(
                    change,
                    lambda record_id=record_id, req=req: self._request(
                        "PUT", f"domains/{self._domain_id(zone)}/records/{record_id}", req
                    ),
                )
                correction.msg = f"{change.msg}, Linode ID: {record_id}: {json.dumps(req)}"
                corrections.append(correction)
        return corrections

    def _create(self, domain_id: int, req: dict[str, Any]) -> None:
        created = self._request("POST", f"domains/{domain_id}/records", req)
        # Linode ignores ttl_sec on create
        self._request("PUT", f"domains/{domain_id}/records/{created['id']}", req)


def _is_default_ns(record: Record) -> bool:
    return record.type == "NS" and record.label == "@" and record.rdata.host in DEFAULT_NAMESERVERS
