"""Lookup of provider and registrar types named in the credentials file."""

from __future__ import annotations

from ..models import ConfigError
from .axfrddns import AxfrDdnsProvider
from .base import DNSProvider, Registrar
from .bind import BindProvider
from .linode import LinodeProvider
from .none import NoneRegistrar
from .route53 import Route53DomainsRegistrar, Route53Provider

PROVIDER_REGISTRY: dict[str, type[DNSProvider]] = {
    cls.TYPE_NAME: cls for cls in (AxfrDdnsProvider, BindProvider, LinodeProvider, Route53Provider)
}
REGISTRAR_REGISTRY: dict[str, type[Registrar]] = {
    cls.TYPE_NAME: cls for cls in (NoneRegistrar, Route53DomainsRegistrar)
}
# a provider type may serve as registrar under its own name
REGISTRAR_ALIASES = {"ROUTE53": "ROUTE53DOMAINS"}


def _type_of(name: str, creds: dict[str, dict[str, str]], default: str = "") -> tuple[str, dict[str, str]]:
    settings = creds.get(name)
    if settings is None:
        if default:
            return default, {}
        raise ConfigError(f"provider {name!r} has no entry in the credentials file")
    rtype = settings.get("TYPE", "").upper()
    if not rtype:
        raise ConfigError(f"credentials entry {name!r} has no TYPE")
    return rtype, settings


def create_provider(name: str, creds: dict[str, dict[str, str]], full_report: bool = False) -> DNSProvider:
    """Instantiate the DNS provider configured under ``name``."""
    rtype, settings = _type_of(name, creds)
    cls = PROVIDER_REGISTRY.get(rtype)
    if cls is None:
        known = ", ".join(sorted(PROVIDER_REGISTRY))
        raise ConfigError(f"unknown DNS provider type {rtype!r} for {name!r}; known: {known}")
    provider = cls(name, settings)
    provider.full_report = full_report
    return provider


def create_registrar(name: str, creds: dict[str, dict[str, str]]) -> Registrar:
    """Instantiate the registrar configured under ``name``; ``none`` needs no entry."""
    rtype, settings = _type_of(name, creds, default="NONE" if name.lower() == "none" else "")
    rtype = REGISTRAR_ALIASES.get(rtype, rtype)
    cls = REGISTRAR_REGISTRY.get(rtype)
    if cls is None:
        known = ", ".join(sorted(REGISTRAR_REGISTRY))
        raise ConfigError(f"unknown registrar type {rtype!r} for {name!r}; known: {known}")
    return cls(name, settings)

