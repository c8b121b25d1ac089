from __future__ import annotations

import pytest

_ENV_KEYS = (
    "MCP_BROWSER_HOST",
    "MCP_BROWSER_PORT",
    "MCP_CDP_TIMEOUT",
    "MCP_STAGE_TIMEOUT",
    "MCP_STAGING_DIR",
    "MCP_CHANNEL_HOST",
    "MCP_CHANNEL_PORT",
    "MCP_ALLOW_HOSTS",
    "MCP_HTTP_TIMEOUT",
    "MCP_HTTP_MAX_BYTES",
    "MCP_CAPTURE_QUALITY",
    "MCP_CAPTURE_FORMAT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_defaults() -> None:
    from mcp_servers.tab_automation.config import AutomationConfig

    cfg = AutomationConfig.from_env()
    assert cfg.cdp_http_base == "http://127.0.0.1:9222"
    assert cfg.stage_timeout == 30.0
    assert cfg.channel_port == 8766
    assert cfg.allow_hosts == []
    assert cfg.default_quality == 0.8
    assert cfg.default_format == "image/jpeg"
    assert cfg.staging_dir.endswith("tab-automation/staged")


def test_from_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.config import AutomationConfig

    monkeypatch.setenv("MCP_BROWSER_HOST", "10.0.0.5")
    monkeypatch.setenv("MCP_BROWSER_PORT", "9333")
    monkeypatch.setenv("MCP_STAGING_DIR", str(tmp_path))
    monkeypatch.setenv("MCP_ALLOW_HOSTS", "Example.com, *, cdn.test ,")
    monkeypatch.setenv("MCP_CAPTURE_FORMAT", "webp")
    monkeypatch.setenv("MCP_CAPTURE_QUALITY", "1.7")

    cfg = AutomationConfig.from_env()
    assert cfg.cdp_http_base == "http://10.0.0.5:9333"
    assert cfg.staging_dir == str(tmp_path)
    assert cfg.allow_hosts == ["example.com", "cdn.test"]
    assert cfg.default_format == "image/webp"
    assert cfg.default_quality == 1.0


@pytest.mark.parametrize(("raw", "expected"), [("0", 1.0), ("5", 5.0), ("9999", 300.0), ("soon", 30.0)])
def test_stage_timeout_is_clamped(monkeypatch: pytest.MonkeyPatch, raw: str, expected: float) -> None:
    from mcp_servers.tab_automation.config import AutomationConfig

    monkeypatch.setenv("MCP_STAGE_TIMEOUT", raw)
    assert AutomationConfig.from_env().stage_timeout == expected


def test_host_allowlist_matches_subdomains() -> None:
    from mcp_servers.tab_automation.config import AutomationConfig

    cfg = AutomationConfig(allow_hosts=["example.com"])
    assert cfg.is_host_allowed("example.com")
    assert cfg.is_host_allowed("files.example.com.")
    assert not cfg.is_host_allowed("badexample.com")
    assert AutomationConfig().is_host_allowed("anything.test")


def test_diagnostics_log_is_bounded_and_filterable() -> None:
    from mcp_servers.tab_automation.diagnostics import DiagnosticsLog

    log = DiagnosticsLog(maxlen=3)
    for i in range(5):
        log.record("stitch" if i % 2 else "detach", f"event {i}", index=i)

    assert len(log) == 3
    assert [e.message for e in log.entries()] == ["event 2", "event 3", "event 4"]
    assert [e.meta["index"] for e in log.entries("stitch")] == [3]
    assert log.entries()[0].to_dict()["meta"] == {"index": 2}

    log.clear()
    assert len(log) == 0


def test_diagnostics_unknown_level_falls_back_to_info() -> None:
    from mcp_servers.tab_automation.diagnostics import DiagnosticsLog

    entry = DiagnosticsLog().record("stage", "hello", level="loud")
    assert entry.level == "info"
    assert "meta" not in entry.to_dict()
