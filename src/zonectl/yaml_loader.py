"""Load and validate the desired-state YAML document."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined
from jinja2 import TemplateError
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import DNSConfig, DomainConfig, Record, UnmanagedConfig, ValidationError
from .rdata import TXT, parse_rdata

PRIORITY_TYPES = {"MX", "SRV"}


def _text(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class RecordSpec(BaseModel):
    """Schema for a desired DNS record."""

    model_config = ConfigDict(extra="forbid")

    name: str = "@"
    type: str
    value: str | list[str]
    ttl: int = Field(default=0, ge=0)
    priority: int | None = Field(default=None, description="Priority for MX/SRV records")
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _uppercase_type(cls, value: str) -> str:
        """Normalise RR type to uppercase."""
        return value.upper()

    @field_validator("name", mode="before")
    @classmethod
    def _name_text(cls, value: Any) -> Any:
        return _text(value)

    @field_validator("value", mode="before")
    @classmethod
    def _value_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_text(item) for item in value]
        return _text(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_text(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): _text(v) for k, v in value.items()}
        return value


class UnmanagedSpec(BaseModel):
    """Schema for an UNMANAGED pattern."""

    model_config = ConfigDict(extra="forbid")

    label: str = "*"
    types: str = "*"
    target: str = "*"


class ZoneSpec(BaseModel):
    """Schema for one zone in the document."""

    model_config = ConfigDict(extra="forbid")

    name: str
    registrar: str = "none"
    dns_providers: list[str] = Field(default_factory=list)
    default_ttl: int | None = Field(default=None, ge=0)
    nameservers: list[str] = Field(default_factory=list)
    records: list[RecordSpec] = Field(default_factory=list)
    unmanaged: list[UnmanagedSpec] = Field(default_factory=list)
    ensure_absent: list[RecordSpec] = Field(default_factory=list)
    no_purge: bool = False
    auto_dnssec: str = ""
    ignore_external_dns: bool = False
    external_dns_prefix: str = ""
    unmanaged_safety_check: bool = True
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("auto_dnssec", mode="before")
    @classmethod
    def _dnssec_flag(cls, value: Any) -> str:
        # YAML reads a bare on/off as a boolean
        if isinstance(value, bool):
            return "on" if value else "off"
        value = str(value or "").lower()
        if value not in {"", "on", "off"}:
            raise ValueError("auto_dnssec must be on or off")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_text(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): _text(v) for k, v in value.items()}
        return value


class DocumentSpec(BaseModel):
    """Schema for the YAML document."""

    model_config = ConfigDict(extra="forbid")

    zones: list[ZoneSpec]


def _render_yaml(path: Path, extra_context: dict[str, Any] | None = None) -> str:
    """Render a YAML file through Jinja2."""
    env = Environment(
        loader=FileSystemLoader(str(path.parent)),
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    template = env.get_template(path.name)
    context = {"env": os.environ}
    if extra_context:
        context.update(extra_context)
    return template.render(**context)


def build_record(spec: RecordSpec, zone: str) -> Record:
    """Turn a record spec into a raw, not yet normalised, record."""
    try:
        if spec.type == "TXT" and isinstance(spec.value, list):
            rdata = TXT(segments=tuple(spec.value))
        else:
            value = " ".join(spec.value) if isinstance(spec.value, list) else spec.value
            if spec.priority is not None and spec.type in PRIORITY_TYPES:
                value = f"{spec.priority} {value}"
            rdata = parse_rdata(spec.type, value)
    except ValueError as exc:
        raise ValidationError(f"zone {zone}: record {spec.name} {spec.type}: {exc}") from exc
    return Record(label=spec.name, type=spec.type, rdata=rdata, ttl=spec.ttl, metadata=dict(spec.metadata))


def _build_records(specs: list[RecordSpec], zone: str, errors: list[str]) -> list[Record]:
    records = []
    for spec in specs:
        try:
            records.append(build_record(spec, zone))
        except ValidationError as exc:
            errors.append(str(exc))
    return records


def build_domain(spec: ZoneSpec) -> DomainConfig:
    """Convert a validated zone spec into a DomainConfig."""
    errors: list[str] = []
    records = _build_records(spec.records, spec.name, errors)
    absences = _build_records(spec.ensure_absent, spec.name, errors)
    if errors:
        raise ValidationError("\n".join(errors))
    return DomainConfig(
        name=spec.name.rstrip(".").lower(),
        records=records,
        nameservers=list(spec.nameservers),
        unmanaged=[UnmanagedConfig(u.label, u.types, u.target) for u in spec.unmanaged],
        ensure_absent=absences,
        no_purge=spec.no_purge,
        auto_dnssec=spec.auto_dnssec,
        ignore_external_dns=spec.ignore_external_dns,
        external_dns_prefix=spec.external_dns_prefix,
        unmanaged_safety_check=spec.unmanaged_safety_check,
        metadata=dict(spec.metadata),
        registrar=spec.registrar,
        dns_providers=list(spec.dns_providers),
        default_ttl=spec.default_ttl,
    )


def load_dns_config(path: Path, template_vars: dict[str, Any] | None = None) -> DNSConfig:
    """Load the desired-state YAML and turn it into a DNSConfig."""
    if not path.exists():
        raise ValidationError(f"Desired-state file {path} does not exist.")
    try:
        rendered = _render_yaml(path, template_vars)
    except TemplateError as exc:
        raise ValidationError(f"Failed to render {path}: {exc}") from exc
    try:
        data = yaml.safe_load(rendered) or {}
    except yaml.YAMLError as exc:  # noqa: BLE001
        raise ValidationError(f"Failed to parse YAML: {exc}") from exc

    try:
        spec = DocumentSpec(**data)
    except Exception as exc:  # noqa: BLE001
        raise ValidationError(f"YAML validation error: {exc}") from exc

    names = [zone.name.rstrip(".").lower() for zone in spec.zones]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError(f"Zones declared more than once: {', '.join(duplicates)}")
    domains = []
    errors = []
    for zone in spec.zones:
        try:
            domains.append(build_domain(zone))
        except ValidationError as exc:
            errors.append(str(exc))
    if errors:
        raise ValidationError("\n".join(errors))
    return DNSConfig(domains=domains)
