"""High-level orchestration for zonectl."""

from __future__ import annotations

import concurrent.futures
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, TextIO

from .config import AppConfig, parse_bool
from .models import (
    ConflictError,
    ConfigError,
    Correction,
    DNSConfig,
    DomainConfig,
    FatalAPIError,
    ValidationError,
    ZonectlError,
    new_record,
)
from .normalize import DEFAULT_TTL, normalize_and_validate, split_warnings
from .ordering import order_by_dependencies
from .providers.base import Capability, DNSProvider, Registrar, normalize_nameservers
from .providers.registry import create_provider, create_registrar
from .yaml_loader import load_dns_config
from .zonelog import ZoneLog

LOG = logging.getLogger("zonectl")

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ZONE_ERRORS = 2
EXIT_FATAL = 3


@dataclass
class ZoneResult:
    """Outcome of reconciling one zone."""

    zone: str
    corrections: int = 0
    errors: list[str] = field(default_factory=list)
    fatal: str | None = None
    report: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors) or self.fatal is not None


@dataclass
class RunSummary:
    """Results of every zone processed in one invocation."""

    results: list[ZoneResult] = field(default_factory=list)

    @property
    def total_corrections(self) -> int:
        return sum(result.corrections for result in self.results)

    def exit_code(self) -> int:
        if any(result.fatal for result in self.results):
            return EXIT_FATAL
        if any(result.errors for result in self.results):
            return EXIT_ZONE_ERRORS
        return EXIT_OK

    def lines(self) -> list[str]:
        """Return the closing summary shown to the operator."""
        failed = [result for result in self.results if result.failed]
        lines = [f"Done. {self.total_corrections} corrections."]
        if failed:
            lines.append(f"{len(failed)} zones had errors:")
            for result in failed:
                first = result.fatal or result.errors[0]
                lines.append(f"    {result.zone}: {first}")
        return lines


class _ZoneTimeout(Exception):
    pass


class ZoneController:
    """Coordinates check/preview/push operations."""

    def __init__(self, config: AppConfig, creds: dict[str, dict[str, str]], stream: TextIO | None = None):
        """Store configuration for subsequent runs."""
        self.config = config
        self.creds = creds
        self.stream = stream
        self._zone_lists: dict[str, list[str]] = {}
        self._zone_lists_lock = threading.Lock()

    # --- loading ---

    def load(self, template_vars: dict[str, Any] | None = None) -> DNSConfig:
        """Load the desired-state document."""
        return load_dns_config(self.config.config_path, template_vars)

    def check(self, template_vars: dict[str, Any] | None = None) -> DNSConfig:
        """Load and validate without contacting any provider."""
        dns_config = self.load(template_vars)
        _raise_for_errors(normalize_and_validate(dns_config))
        return dns_config

    def prepare(
        self, template_vars: dict[str, Any] | None = None, zones: list[str] | None = None
    ) -> tuple[list[DomainConfig], dict[str, DNSProvider], dict[str, Registrar]]:
        """Load, instantiate providers and validate against their capabilities."""
        dns_config = self.load(template_vars)
        selected = dns_config.select(zones or [])
        if zones and not selected:
            raise ValidationError(f"None of the requested zones are declared: {', '.join(zones)}")
        providers: dict[str, DNSProvider] = {}
        registrars: dict[str, Registrar] = {}
        for domain in selected:
            for name in domain.dns_providers:
                if name not in providers:
                    providers[name] = create_provider(name, self.creds, full_report=self.config.full_report)
            if domain.registrar not in registrars:
                registrars[domain.registrar] = create_registrar(domain.registrar, self.creds)
        _raise_for_errors(normalize_and_validate(dns_config, providers))
        selected_names = {domain.name for domain in selected}
        return [d for d in dns_config.domains if d.name in selected_names], providers, registrars

    # --- reconciliation ---

    def run(
        self,
        domains: list[DomainConfig],
        providers: dict[str, DNSProvider],
        registrars: dict[str, Registrar],
        push: bool = False,
    ) -> RunSummary:
        """Reconcile every domain; concurrent-capable zones run in parallel."""
        concurrent_domains = [d for d in domains if _can_concur(d, providers)]
        serial_domains = [d for d in domains if not _can_concur(d, providers)]
        results: dict[str, ZoneResult] = {}

        if concurrent_domains:
            LOG.info("Running %d zones concurrently", len(concurrent_domains))
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.max_concurrency) as pool:
                futures = {
                    pool.submit(self.run_zone, domain, providers, registrars, push): domain.name
                    for domain in concurrent_domains
                }
                for future in concurrent.futures.as_completed(futures):
                    results[futures[future]] = future.result()
        for domain in serial_domains:
            results[domain.name] = self.run_zone(domain, providers, registrars, push)

        summary = RunSummary(results=[results[domain.name] for domain in domains])
        if self.config.report_path:
            write_report(self.config.report_path, summary)
        return summary

    def run_zone(
        self,
        domain: DomainConfig,
        providers: dict[str, DNSProvider],
        registrars: dict[str, Registrar],
        push: bool = False,
    ) -> ZoneResult:
        """Reconcile one zone with all of its providers and its registrar."""
        log = ZoneLog(domain.name, self.stream)
        result = ZoneResult(zone=domain.name)
        timeout = self.config.zone_timeout
        deadline = time.monotonic() + timeout if timeout else None
        log.print(f"******************** Domain: {domain.name}")
        try:
            self._add_nameservers(domain, providers)
            for name in domain.dns_providers:
                provider = providers[name]
                log.print(f"----- DNS Provider: {name}...")
                corrections = self._provider_corrections(domain.copy(), provider, push, log, result, deadline)
                self._apply(name, corrections, push, log, result, deadline)
            registrar = registrars.get(domain.registrar)
            if registrar is not None:
                log.print(f"----- Registrar: {domain.registrar}...")
                corrections = registrar.get_registrar_corrections(domain)
                self._apply(domain.registrar, corrections, push, log, result, deadline)
        except (FatalAPIError, ConflictError) as exc:
            result.fatal = str(exc)
            log.print(f"FATAL: {exc}")
            LOG.error("%s: aborting zone: %s", domain.name, exc)
        except _ZoneTimeout:
            result.errors.append(f"zone timed out after {timeout}s")
            log.print(f"TIMEOUT: {domain.name} exceeded {timeout}s; remaining corrections skipped")
        except ZonectlError as exc:
            result.errors.append(str(exc))
            log.print(f"ERROR: {exc}")
            LOG.error("%s: %s", domain.name, exc)
        except Exception as exc:  # noqa: BLE001
            result.fatal = f"unexpected error: {exc}"
            log.print(f"FATAL: unexpected error: {exc}")
            LOG.exception("%s: aborting zone after unexpected error", domain.name)
        finally:
            log.flush()
        return result

    def _add_nameservers(self, domain: DomainConfig, providers: dict[str, DNSProvider]) -> None:
        """Merge provider nameservers into the zone and its apex NS records."""
        names = list(domain.nameservers)
        for provider_name in domain.dns_providers:
            names.extend(providers[provider_name].get_nameservers(domain.name))
        domain.nameservers = normalize_nameservers(names)
        if parse_bool(domain.metadata.get("no_ns")):
            return
        present = {r.rdata.host for r in domain.records if r.type == "NS" and r.label == "@"}
        ttl = domain.default_ttl or DEFAULT_TTL
        for nameserver in domain.nameservers:
            if nameserver not in present:
                domain.records.append(new_record("@", "NS", f"{nameserver}.", domain.name, ttl=ttl))

    def _zones_of(self, name: str, provider: DNSProvider) -> list[str]:
        with self._zone_lists_lock:
            cached = self._zone_lists.get(name)
        if cached is not None:
            return cached
        zones = provider.list_zones()
        with self._zone_lists_lock:
            return self._zone_lists.setdefault(name, zones)

    def _provider_corrections(
        self,
        dc: DomainConfig,
        provider: DNSProvider,
        push: bool,
        log: ZoneLog,
        result: ZoneResult,
        deadline: float | None,
    ) -> list[Correction]:
        exists = True
        if provider.has_capability(Capability.CAN_GET_ZONES):
            exists = dc.name in self._zones_of(provider.name, provider)
        if not exists:
            msg = f'Ensuring zone "{dc.name}" exists in "{provider.name}"'
            log.print(msg)
            result.corrections += 1
            result.report.append({"provider": provider.name, "msg": msg})
            if not push:
                # nothing to read yet; the plan is the whole zone
                return provider.get_zone_records_corrections(dc, [])
            try:
                _run_with_deadline(lambda: provider.ensure_zone_exists(dc.name), deadline)
            except ZonectlError as exc:
                raise FatalAPIError(f"cannot create zone {dc.name} in {provider.name}: {exc}") from exc
            with self._zone_lists_lock:
                self._zone_lists.setdefault(provider.name, []).append(dc.name)
        existing = provider.get_zone_records(dc.name, dc.metadata)
        return provider.get_zone_records_corrections(dc, existing)

    def _apply(
        self,
        source: str,
        corrections: list[Correction],
        push: bool,
        log: ZoneLog,
        result: ZoneResult,
        deadline: float | None,
    ) -> None:
        """Print corrections in dependency order and execute them when pushing."""
        ordered = order_by_dependencies(corrections)
        actionable = [c for c in ordered if not c.is_report]
        if actionable:
            log.print(f"{len(actionable)} correction{'s' if len(actionable) != 1 else ''}")
        number = 0
        for correction in ordered:
            result.report.append({"provider": source, "msg": correction.msg, "report": correction.is_report})
            if correction.is_report:
                log.print(correction.msg)
                continue
            number += 1
            result.corrections += 1
            log.print(f"#{number}: {correction.msg}")
            if not push:
                continue
            try:
                _run_with_deadline(correction.fn, deadline)
            except (FatalAPIError, _ZoneTimeout):
                raise
            except Exception as exc:  # noqa: BLE001
                result.errors.append(str(exc))
                log.print(f"FAILURE! {exc}")
                LOG.warning("%s: correction failed: %s", source, exc)
            else:
                log.print("SUCCESS!")

    # --- export ---

    def get_zones(self, provider_name: str, zones: list[str]) -> dict[str, list[Any]]:
        """Return the live records of ``zones`` (all when ``["all"]``) at a provider."""
        provider = create_provider(provider_name, self.creds)
        if zones == ["all"]:
            if not provider.has_capability(Capability.CAN_GET_ZONES):
                raise ConfigError(f"provider {provider_name} cannot list its zones; name them explicitly")
            zones = provider.list_zones()
        return {zone: provider.get_zone_records(zone.rstrip(".").lower()) for zone in zones}


def _can_concur(domain: DomainConfig, providers: dict[str, DNSProvider]) -> bool:
    return all(providers[name].has_capability(Capability.CAN_CONCUR) for name in domain.dns_providers)


def _run_with_deadline(fn: Callable[[], Any], deadline: float | None) -> Any:
    """Run ``fn``; abandon it when the zone deadline passes."""
    if deadline is None:
        return fn()
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise _ZoneTimeout()
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = pool.submit(fn)
    try:
        return future.result(timeout=remaining)
    except concurrent.futures.TimeoutError:
        raise _ZoneTimeout() from None
    finally:
        pool.shutdown(wait=False)


def _raise_for_errors(problems: list[ZonectlError]) -> None:
    errors, _ = split_warnings(problems)
    if errors:
        raise ValidationError("\n".join(str(error) for error in errors))


def write_report(path: Path, summary: RunSummary) -> None:
    """Write a JSON report of the corrections of every zone."""
    payload = [
        {
            "domain": result.zone,
            "corrections": result.corrections,
            "errors": result.errors,
            "fatal": result.fatal,
            "items": result.report,
        }
        for result in summary.results
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    LOG.info("Wrote report to %s", path)


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
