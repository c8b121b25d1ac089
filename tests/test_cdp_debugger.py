from __future__ import annotations

from typing import Any

import pytest


class FakeConnection:
    def __init__(self, ws_url: str, timeout: float = 5.0) -> None:
        self.ws_url = ws_url
        self.timeout = timeout
        self.sent: list[tuple[str, dict[str, Any] | None, str | None]] = []
        self.sink = None
        self.closed = False
        self.targets: list[dict[str, Any]] = [
            {"targetId": "sw-1", "type": "service_worker", "attached": False, "url": "chrome-extension://x/sw.js"},
            {"targetId": "page-1", "type": "page", "attached": False, "url": "https://example.com", "title": "Ex"},
            {"targetId": "page-2", "type": "page", "attached": True, "url": "https://devtools.example"},
        ]

    def set_event_sink(self, sink) -> None:  # noqa: ANN001
        self.sink = sink

    def send(self, method: str, params: dict[str, Any] | None = None, *, session_id: str | None = None):
        self.sent.append((method, params, session_id))
        if method == "Target.getTargets":
            return {"targetInfos": self.targets}
        if method == "Target.attachToTarget":
            return {"sessionId": f"S-{params['targetId']}"}
        if method == "DOM.enable":
            return {}
        return {}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def debugger(monkeypatch: pytest.MonkeyPatch):  # noqa: ANN201
    import mcp_servers.tab_automation.debugger as debugger_module
    from mcp_servers.tab_automation.config import AutomationConfig

    urls: list[str] = []

    def fake_get_json(url: str, timeout: float = 2.0):  # noqa: ARG001
        urls.append(url)
        return {"webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/browser/abc"}

    monkeypatch.setattr(debugger_module, "http_get_json", fake_get_json)
    holder: dict[str, FakeConnection] = {}

    def factory(ws_url: str, timeout: float = 5.0) -> FakeConnection:
        holder["conn"] = FakeConnection(ws_url, timeout)
        return holder["conn"]

    dbg = debugger_module.CdpDebugger(AutomationConfig(cdp_port=9333), connection_factory=factory)
    dbg.http_urls = urls  # type: ignore[attr-defined]
    dbg.holder = holder  # type: ignore[attr-defined]
    return dbg


def test_connects_via_version_endpoint(debugger) -> None:  # noqa: ANN001
    targets = debugger.get_targets()

    assert debugger.http_urls == ["http://127.0.0.1:9333/json/version"]
    conn = debugger.holder["conn"]
    assert conn.ws_url == "ws://127.0.0.1:9222/devtools/browser/abc"
    assert conn.sent[0] == ("Target.setDiscoverTargets", {"discover": True}, None)
    assert [t.tab_id for t in targets] == ["sw-1", "page-1", "page-2"]
    assert targets[2].attached is True
    assert targets[1].title == "Ex"


def test_active_tab_is_first_page(debugger) -> None:  # noqa: ANN001
    assert debugger.active_tab_id() == "page-1"


def test_attach_routes_commands_through_session(debugger) -> None:  # noqa: ANN001
    assert debugger.attach("page-1") == "S-page-1"
    debugger.send_command("page-1", "DOM.enable")

    conn = debugger.holder["conn"]
    assert ("Target.attachToTarget", {"targetId": "page-1", "flatten": True}, None) in conn.sent
    assert conn.sent[-1] == ("DOM.enable", None, "S-page-1")

    debugger.detach("page-1")
    assert conn.sent[-1] == ("Target.detachFromTarget", {"sessionId": "S-page-1"}, None)


def test_send_without_attach_fails(debugger) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.http_client import HttpClientError

    with pytest.raises(HttpClientError, match="not attached"):
        debugger.send_command("page-1", "DOM.enable")


def test_detach_unknown_tab_is_noop(debugger) -> None:  # noqa: ANN001
    debugger.detach("page-9")
    assert "conn" not in debugger.holder


def test_target_destroyed_notifies_listener(debugger) -> None:  # noqa: ANN001
    removed: list[str] = []
    debugger.set_tab_removed_listener(removed.append)
    debugger.attach("page-1")

    debugger.holder["conn"].sink({"method": "Target.targetDestroyed", "params": {"targetId": "page-1"}})

    assert removed == ["page-1"]
    from mcp_servers.tab_automation.http_client import HttpClientError

    with pytest.raises(HttpClientError):
        debugger.send_command("page-1", "DOM.enable")


def test_detached_event_by_session_id_drops_registry_session(debugger) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.session_manager import SessionRegistry

    registry = SessionRegistry(debugger)
    registry.acquire("page-1")
    assert registry.holds("page-1")

    debugger.holder["conn"].sink({"method": "Target.detachedFromTarget", "params": {"sessionId": "S-page-1"}})

    assert not registry.holds("page-1")
    assert registry.release("page-1") is False


def test_registry_sees_external_attachment(debugger) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.session_manager import SessionRegistry
    from mcp_servers.tab_automation.tools.base import AttachmentConflict

    registry = SessionRegistry(debugger)
    with pytest.raises(AttachmentConflict):
        registry.acquire("page-2")
    assert not any(m == "Target.attachToTarget" for m, _p, _s in debugger.holder["conn"].sent)


def test_missing_websocket_url(monkeypatch: pytest.MonkeyPatch) -> None:
    import mcp_servers.tab_automation.debugger as debugger_module
    from mcp_servers.tab_automation.config import AutomationConfig
    from mcp_servers.tab_automation.http_client import HttpClientError

    monkeypatch.setattr(debugger_module, "http_get_json", lambda url, timeout=2.0: {})  # noqa: ARG005
    dbg = debugger_module.CdpDebugger(AutomationConfig(), connection_factory=FakeConnection)

    with pytest.raises(HttpClientError, match="No browser WebSocket endpoint"):
        dbg.get_targets()


def test_close_drops_connection(debugger) -> None:  # noqa: ANN001
    debugger.attach("page-1")
    conn = debugger.holder["conn"]
    debugger.close()

    assert conn.closed is True
    from mcp_servers.tab_automation.http_client import HttpClientError

    with pytest.raises(HttpClientError):
        debugger.send_command("page-1", "DOM.enable")
