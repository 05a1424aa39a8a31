"""Tests for the command-line entry point."""

import json
import textwrap
from unittest.mock import patch

import pytest
import yaml

from zonectl.cli import main

ZONES = """
zones:
  - name: example.com
    dns_providers: [files]
    records:
      - {name: www, type: A, value: "{{ web_ip | default('192.0.2.1') }}"}
  - name: example.org
    dns_providers: [files]
    records:
      - {name: www, type: A, value: 192.0.2.2}
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    (tmp_path / "zones.yaml").write_text(textwrap.dedent(ZONES))
    (tmp_path / "creds.yaml").write_text(
        f"files:\n  TYPE: BIND\n  directory: {tmp_path / 'zones'}\n  default_ns: ns1.example.com\n"
    )
    for name in ("ZONECTL_CONFIG", "ZONECTL_CREDS", "MAX_CONCURRENCY", "ZONE_TIMEOUT", "FULL_REPORT", "REPORT_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ZONECTL_CONFIG", str(tmp_path / "zones.yaml"))
    monkeypatch.setenv("ZONECTL_CREDS", str(tmp_path / "creds.yaml"))
    with patch("zonectl.config.load_dotenv"):
        yield tmp_path


def _main(*argv):
    with pytest.raises(SystemExit) as excinfo:
        main(list(argv))
    return excinfo.value.code


class TestCheck:
    def test_ok(self, workspace, capsys):
        assert _main("check") == 0
        assert "No errors. 2 zones checked." in capsys.readouterr().out

    def test_invalid(self, workspace, capsys):
        assert _main("check", "-e", "web_ip=999.1.1.1") == 1
        assert "is not an IPv4 address" in capsys.readouterr().err

    def test_bad_template_var(self, workspace, capsys):
        assert _main("check", "--var", "novalue") == 1
        assert "expected KEY=VALUE" in capsys.readouterr().err

    def test_missing_config(self, workspace, capsys):
        assert _main("check", "--config", str(workspace / "nope.yaml")) == 1


class TestPreviewPush:
    def test_preview_then_push(self, workspace, capsys):
        assert _main("preview") == 0
        out = capsys.readouterr().out
        assert "******************** Domain: example.com" in out
        assert "Done. 4 corrections." in out

        assert _main("push", "--zones", "example.com") == 0
        assert (workspace / "zones" / "example.com.zone").exists()
        assert not (workspace / "zones" / "example.org.zone").exists()
        capsys.readouterr()

        assert _main("preview", "--zones", "example.com") == 0
        assert "Done. 0 corrections." in capsys.readouterr().out

    def test_report(self, workspace):
        report = workspace / "report.json"
        assert _main("preview", "--report", str(report)) == 0
        assert [entry["domain"] for entry in json.loads(report.read_text())] == ["example.com", "example.org"]

    def test_unknown_provider(self, workspace, capsys):
        (workspace / "creds.yaml").write_text("files:\n  TYPE: NOPE\n")
        assert _main("preview") == 1
        assert "unknown DNS provider type" in capsys.readouterr().err


class TestGetZones:
    def test_stdout_yaml(self, workspace, capsys):
        _main("push")
        capsys.readouterr()
        assert _main("get-zones", "files", "example.com") == 0
        doc = yaml.safe_load(capsys.readouterr().out)
        assert doc["zones"][0]["records"] == [{"name": "www", "type": "A", "value": "192.0.2.1", "ttl": 300}]

    def test_json_file(self, workspace, capsys):
        _main("push")
        output = workspace / "export.json"
        assert _main("get-zones", "files", "all", "--format", "json", "--output", str(output)) == 0
        doc = json.loads(output.read_text())
        assert [zone["name"] for zone in doc["zones"]] == ["example.com", "example.org"]


class TestUsage:
    def test_unknown_command_is_config_error(self, capsys):
        assert _main("frobnicate") == 1
        assert "invalid choice" in capsys.readouterr().err

    def test_get_zones_needs_zone(self, capsys):
        assert _main("get-zones", "files") == 1
