from __future__ import annotations

import json

import pytest

from arcgis_mcp_server.config import DEFAULT_CONFIG_PATH, load_config, load_server_config
from arcgis_mcp_server.env_utils import env_flag, first_env, is_production_env
from arcgis_mcp_server.observability import AuditLogger, InMemoryMetrics, format_prometheus


class TestConfig:
    def test_bundled_config(self):
        config = load_config(DEFAULT_CONFIG_PATH)
        assert config["server"]["transport"] == "stdio"
        assert "read_timeout" in config["arcgis"]

    def test_missing_optional_config_is_empty(self, tmp_path):
        assert load_config(tmp_path / "nope.yaml", required=False) == {}

    def test_missing_required_config_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_explicit_config_path(self, tmp_path, monkeypatch):
        path = tmp_path / "server.yaml"
        path.write_text("server:\n  port: 9100\n", encoding="utf-8")
        monkeypatch.setenv("MCP_SERVER_CONFIG", str(path))
        assert load_server_config()["server"]["port"] == 9100

    def test_explicit_config_path_must_exist(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MCP_SERVER_CONFIG", str(tmp_path / "missing.yaml"))
        with pytest.raises(FileNotFoundError):
            load_server_config()


class TestEnv:
    @pytest.mark.parametrize("name", ["ENVIRONMENT", "APP_ENV", "NODE_ENV"])
    def test_production_detection(self, monkeypatch, name):
        for var in ("ENVIRONMENT", "APP_ENV", "NODE_ENV"):
            monkeypatch.delenv(var, raising=False)
        assert is_production_env() is False
        monkeypatch.setenv(name, " Production ")
        assert is_production_env() is True

    def test_env_flag(self, monkeypatch):
        monkeypatch.setenv("FLAG_X", "off")
        assert env_flag("FLAG_X", "1") is False
        monkeypatch.delenv("FLAG_X")
        assert env_flag("FLAG_X", "1") is True

    def test_first_env(self, monkeypatch):
        monkeypatch.setenv("A_VAR", " ")
        monkeypatch.setenv("B_VAR", "value")
        assert first_env("A_VAR", "B_VAR") == "value"


class TestObservability:
    def test_metrics_snapshot(self):
        metrics = InMemoryMetrics()
        metrics.record("query", 10.0, error=False)
        metrics.record("query", 30.0, error=True)
        snapshot = metrics.snapshot()
        assert snapshot["query"] == {"calls": 2.0, "errors": 1.0, "avg_latency_ms": 20.0}

    def test_prometheus_format(self):
        text = format_prometheus({"query": {"calls": 2.0, "errors": 1.0, "avg_latency_ms": 20.0}})
        assert 'mcp_tool_calls_total{tool="query"} 2.0' in text
        assert 'mcp_tool_errors_total{tool="query"} 1.0' in text
        assert text.endswith("\n")

    def test_audit_disabled_writes_nothing(self, tmp_path):
        path = tmp_path / "audit.log"
        AuditLogger(path=str(path), enabled=False).log_call(
            tool="query", layer="x", status="ok", duration_ms=1.0
        )
        assert not path.exists()

    def test_audit_appends_json_lines(self, tmp_path):
        path = tmp_path / "logs" / "audit.log"
        audit = AuditLogger(path=str(path), enabled=True)
        audit.log_call(tool="query", layer="https://h/l", status="ok", duration_ms=2.5, correlation_id="c1")
        audit.log_call(tool="deleteFeature", layer="https://h/l", status="rejected", duration_ms=0.1,
                       error_code="MissingCredential")
        entries = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [e["tool"] for e in entries] == ["query", "deleteFeature"]
        assert entries[1]["error_code"] == "MissingCredential"

    def test_audit_directory_created_on_first_write(self, tmp_path):
        path = tmp_path / "later" / "audit.log"
        audit = AuditLogger(path=str(path), enabled=True)
        assert not path.parent.exists()
        audit.log_call(tool="query", layer="https://h/l", status="ok", duration_ms=1.0)
        assert path.exists()
