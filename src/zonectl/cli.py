"""Command-line entry point for zonectl."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import NoReturn

from .config import AppConfig, load_config, load_credentials
from .controller import EXIT_CONFIG, EXIT_FATAL, ZoneController, configure_logging
from .exporter import write_export, zones_to_json, zones_to_yaml
from .models import ConfigError, ValidationError, ZonectlError


class _Parser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with the config error code."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_CONFIG, f"{self.prog}: error: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser."""
    parser = _Parser(description="Keep DNS zones at every provider in line with one declaration.")
    parser.add_argument("--log-level", help="Override log level (default from config).")

    subparsers = parser.add_subparsers(dest="command", required=True)
    check_parser = subparsers.add_parser("check", help="Load and validate the desired state only.")
    _register_common_arguments(check_parser)

    preview_parser = subparsers.add_parser("preview", help="Show the corrections each provider needs.")
    _register_common_arguments(preview_parser)
    _register_run_arguments(preview_parser)

    push_parser = subparsers.add_parser("push", help="Show and apply the corrections.")
    _register_common_arguments(push_parser)
    _register_run_arguments(push_parser)

    zones_parser = subparsers.add_parser("get-zones", help="Export live zones from a provider.")
    zones_parser.add_argument("--creds", help="Path to the credentials file.")
    zones_parser.add_argument("provider", help="Provider name from the credentials file.")
    zones_parser.add_argument("zones", nargs="+", help="Zone names, or 'all'.")
    zones_parser.add_argument("--output", help="Path to write the export (default stdout).")
    zones_parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Serialization format for the export.",
    )
    return parser


def _register_common_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by check/preview/push."""
    subparser.add_argument("--config", help="Path to the desired-state YAML file.")
    subparser.add_argument(
        "-e",
        "--var",
        action="append",
        help="Template variable in KEY=VALUE form. Can be repeated.",
    )


def _register_run_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by preview/push."""
    subparser.add_argument("--creds", help="Path to the credentials file.")
    subparser.add_argument("--zones", help="Comma-separated zones to process (default all).")
    subparser.add_argument("--full", action="store_true", help="List every skipped record.")
    subparser.add_argument("--report", help="Path to write a JSON report of the corrections.")


def _parse_template_vars(values: list[str] | None) -> dict[str, str]:
    """Convert KEY=VALUE pairs into a dict."""
    result: dict[str, str] = {}
    if not values:
        return result
    for value in values:
        if "=" not in value:
            raise ConfigError(f"Invalid template var '{value}', expected KEY=VALUE.")
        key, val = value.split("=", 1)
        result[key] = val
    return result


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Let command-line flags override environment settings."""
    overrides: dict[str, object] = {}
    if getattr(args, "config", None):
        overrides["config_path"] = Path(args.config)
    if getattr(args, "creds", None):
        overrides["creds_path"] = Path(args.creds)
    if getattr(args, "full", False):
        overrides["full_report"] = True
    if getattr(args, "report", None):
        overrides["report_path"] = Path(args.report)
    return dataclasses.replace(config, **overrides)


def _run_check(controller: ZoneController, args: argparse.Namespace) -> int:
    """Execute the check command."""
    dns_config = controller.check(_parse_template_vars(args.var))
    print(f"No errors. {len(dns_config.domains)} zones checked.")
    return 0


def _run_plan(controller: ZoneController, args: argparse.Namespace, push: bool) -> int:
    """Execute the preview or push command."""
    zones = [zone.strip() for zone in (args.zones or "").split(",") if zone.strip()]
    domains, providers, registrars = controller.prepare(_parse_template_vars(args.var), zones)
    summary = controller.run(domains, providers, registrars, push=push)
    for line in summary.lines():
        print(line)
    return summary.exit_code()


def _run_get_zones(controller: ZoneController, args: argparse.Namespace) -> int:
    """Execute the get-zones command."""
    zones = controller.get_zones(args.provider, args.zones)
    if args.format == "json":
        content = zones_to_json(zones, args.provider)
    else:
        content = zones_to_yaml(zones, args.provider)
    if args.output:
        write_export(Path(args.output), content)
        print(f"Wrote zones to {args.output}")
    else:
        print(content)
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = _apply_overrides(load_config(), args)
        configure_logging(args.log_level or config.log_level)
        creds = load_credentials(config.creds_path) if args.command != "check" else {}
        controller = ZoneController(config, creds)
        if args.command == "check":
            code = _run_check(controller, args)
        elif args.command == "preview":
            code = _run_plan(controller, args, push=False)
        elif args.command == "push":
            code = _run_plan(controller, args, push=True)
        elif args.command == "get-zones":
            code = _run_get_zones(controller, args)
        else:  # pragma: no cover - argparse ensures we never reach here
            parser.error(f"Unsupported command {args.command}")
    except (ConfigError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)
    except ZonectlError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    sys.exit(code)


if __name__ == "__main__":
    main()
