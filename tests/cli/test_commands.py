"""Tests for the ``status`` and ``serve`` commands and the entry point."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest
from click.testing import CliRunner

from gnmiwatch.cli.main import AppContext, _error_code, cli, main
from gnmiwatch.cli.serve import load_inventory
from gnmiwatch.errors import ConfigError
from gnmiwatch.models.config import AppSettings

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_httpx import HTTPXMock

BASE = "http://gnmiwatch.test"

ROUTERS = {
    "routers": {
        "leaf1": {
            "name": "Leaf-1",
            "type": "leaf",
            "host": "10.0.0.2",
            "port": 57401,
            "status": "connected",
            "lastUpdate": "2023-11-14T22:13:20+00:00",
            "lastError": None,
        },
        "leaf2": {
            "name": "leaf2",
            "type": "leaf",
            "host": "10.0.0.3",
            "port": 57400,
            "status": "disconnected",
            "lastUpdate": None,
            "lastError": "[leaf2] stream ended",
        },
    }
}
LINKS = {
    "links": {
        "leaf1-leaf2": {
            "status": "down",
            "router1": {"id": "leaf1", "interface": "ethernet-1/1", "state": "up"},
            "router2": {"id": "leaf2", "interface": "ethernet-1/1", "state": "unknown"},
        }
    }
}
STATS = {
    "routers": {"total": 2, "active": 1, "percentage": 50},
    "byRole": {"leaf": {"total": 2, "active": 1}},
}


def _mock_server(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=f"{BASE}/api/routers", json=ROUTERS)
    httpx_mock.add_response(url=f"{BASE}/api/links", json=LINKS)
    httpx_mock.add_response(url=f"{BASE}/api/stats", json=STATS)


class TestStatusCommand:
    def test_json_output(self, httpx_mock: HTTPXMock) -> None:
        _mock_server(httpx_mock)
        runner = CliRunner()
        result = runner.invoke(cli, ["--format", "json", "status", "--url", BASE])

        assert result.exit_code == 0, result.output
        parsed = json.loads(result.stdout)
        assert parsed["ok"] is True
        assert parsed["command"] == "status"
        assert parsed["data"]["stats"]["routers"]["percentage"] == 50
        assert parsed["data"]["routers"]["leaf2"]["lastError"] == "[leaf2] stream ended"
        assert list(parsed["data"]["links"]) == ["leaf1-leaf2"]

    def test_local_format_overrides(self, httpx_mock: HTTPXMock) -> None:
        _mock_server(httpx_mock)
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--format", "rich", "status", "--url", BASE, "--format", "json"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["ok"] is True

    def test_rich_output(self, httpx_mock: HTTPXMock) -> None:
        _mock_server(httpx_mock)
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--format", "rich", "status", "--url", BASE + "/"], env={"COLUMNS": "200"}
        )

        assert result.exit_code == 0, result.output
        assert "1/2 devices active (50%)" in result.output
        assert "Leaf-1" in result.output
        assert "leaf1-leaf2" in result.output

    def test_server_unreachable(
        self, httpx_mock: HTTPXMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        with pytest.raises(SystemExit) as exc_info:
            main(["--format", "json", "status", "--url", BASE])
        assert exc_info.value.code == 1

        parsed = json.loads(capsys.readouterr().out)
        assert parsed["ok"] is False
        assert parsed["error"]["code"] == "connection_error"
        assert "Connection refused" in parsed["error"]["message"]


class TestServeCommand:
    def test_help(self) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--inventory" in result.output
        assert "--port" in result.output

    def test_missing_inventory_is_usage_error(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["serve", "--inventory", str(tmp_path / "missing.json")])
        assert result.exit_code == 2
        assert "Inventory file not found" in result.output

    def test_load_inventory_applies_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "inventory.json"
        path.write_text(
            json.dumps({"devices": {"r1": {"host": "192.0.2.1"}}}), encoding="utf-8"
        )
        app_ctx = AppContext(
            output_format=None,
            verbose=False,
            settings=AppSettings(username="ops", password="pw"),
        )
        inventory = load_inventory(app_ctx, str(path))
        assert list(inventory.devices) == ["r1"]
        assert inventory.credentials.username == "ops"
        assert inventory.credentials.password == "pw"


class TestEntryPoint:
    def test_commands_listed(self) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "status" in result.output

    def test_usage_error_exit_code(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["no-such-command"])
        assert exc_info.value.code == 2

    def test_error_codes(self) -> None:
        assert _error_code(ConfigError("bad")) == "config_error"
        assert _error_code(httpx.ConnectError("refused")) == "connection_error"
        assert _error_code(RuntimeError("x")) == "RuntimeError"
