"""Environment-driven configuration and provider credentials."""

from __future__ import annotations

import base64
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .models import ConfigError


@dataclass(frozen=True)
class TsigKey:
    """Holds TSIG credentials used for AXFR and dynamic updates."""

    name: str
    algorithm: str
    secret: str


@dataclass(frozen=True)
class AppConfig:
    """Application-wide configuration values."""

    config_path: Path
    creds_path: Path
    log_level: str
    max_concurrency: int
    zone_timeout: float | None
    full_report: bool
    report_path: Path | None


KEYFILE_PATTERN = re.compile(
    r'key\s+"(?P<name>[^"]+)"\s*\{'
    r"(?P<body>.*?)"
    r"\}",
    re.IGNORECASE | re.DOTALL,
)
ALGORITHM_PATTERN = re.compile(
    r"algorithm\s+(?P<algorithm>[\w-]+)\s*;",
    re.IGNORECASE,
)
SECRET_PATTERN = re.compile(
    r'secret\s+"(?P<secret>[^"]+)"\s*;',
    re.IGNORECASE,
)
TSIG_ALGORITHMS = {
    "hmac-md5": "hmac-md5",
    "md5": "hmac-md5",
    "hmac-sha1": "hmac-sha1",
    "sha1": "hmac-sha1",
    "hmac-sha256": "hmac-sha256",
    "sha256": "hmac-sha256",
    "hmac-sha512": "hmac-sha512",
    "sha512": "hmac-sha512",
}
ENV_REFERENCE = re.compile(r"^\$(?P<name>[A-Za-z_][A-Za-z0-9_]*)$")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Return a boolean parsed from a string."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_keyfile(encoded: str) -> TsigKey:
    """Decode and parse a base64-encoded BIND keyfile."""
    try:
        decoded = base64.b64decode(encoded).decode("utf-8")
    except Exception as exc:  # noqa: BLE001
        raise ConfigError("Failed to decode TSIG key file base64 payload.") from exc

    match = KEYFILE_PATTERN.search(decoded)
    if not match:
        raise ConfigError("TSIG key file does not match expected format.")
    body = match.group("body")
    algo_match = ALGORITHM_PATTERN.search(body)
    secret_match = SECRET_PATTERN.search(body)
    if not (algo_match and secret_match):
        raise ConfigError("TSIG key file missing algorithm or secret.")
    return parse_tsig_spec(f"{algo_match.group('algorithm')}:{match.group('name')}:{secret_match.group('secret')}")


def parse_tsig_spec(raw: str) -> TsigKey:
    """Parse an ``algorithm:keyname:secret`` triple."""
    parts = raw.split(":")
    if len(parts) != 3:
        raise ConfigError("TSIG key must be written as algorithm:keyname:secret.")
    algorithm = TSIG_ALGORITHMS.get(parts[0].lower())
    if algorithm is None:
        raise ConfigError(f"Unknown TSIG algorithm {parts[0]!r}.")
    name = parts[1] if parts[1].endswith(".") else f"{parts[1]}."
    return TsigKey(name=name, algorithm=algorithm, secret=parts[2])


def _expand(value: object) -> str:
    """Resolve ``$NAME`` references against the environment."""
    text = str(value)
    match = ENV_REFERENCE.match(text)
    if not match:
        return text
    resolved = os.getenv(match.group("name"))
    if resolved is None:
        raise ConfigError(f"Credential refers to unset environment variable {match.group('name')}.")
    return resolved


def load_credentials(path: Path) -> dict[str, dict[str, str]]:
    """Load the provider credentials file (YAML or JSON)."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to parse credentials file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Credentials file {path} must map provider names to settings.")
    creds: dict[str, dict[str, str]] = {}
    for name, settings in data.items():
        if not isinstance(settings, dict):
            raise ConfigError(f"Credentials for {name} must be a mapping.")
        creds[str(name)] = {str(k): _expand(v) for k, v in settings.items()}
    return creds


def load_config() -> AppConfig:
    """Load configuration values from the environment (and .env)."""
    load_dotenv()
    timeout = os.getenv("ZONE_TIMEOUT")
    report = os.getenv("REPORT_PATH")
    try:
        max_concurrency = int(os.getenv("MAX_CONCURRENCY", "4"))
        zone_timeout = float(timeout) if timeout else None
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if max_concurrency < 1:
        raise ConfigError("MAX_CONCURRENCY must be at least 1.")

    return AppConfig(
        config_path=Path(os.getenv("ZONECTL_CONFIG", "zones.yaml")),
        creds_path=Path(os.getenv("ZONECTL_CREDS", "creds.yaml")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        max_concurrency=max_concurrency,
        zone_timeout=zone_timeout,
        full_report=parse_bool(os.getenv("FULL_REPORT"), default=False),
        report_path=Path(report) if report else None,
    )
