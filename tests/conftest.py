from __future__ import annotations

import base64
from collections.abc import Callable
from io import BytesIO
from typing import Any

import pytest
from PIL import Image

from mcp_servers.tab_automation.debugger import TargetInfo
from mcp_servers.tab_automation.http_client import HttpClientError

DomHandler = Callable[[str, dict[str, Any]], dict[str, Any]]


def file_input_dom(
    *,
    node_id: int = 42,
    node_name: str = "INPUT",
    attributes: list[str] | None = None,
    change_value: bool = True,
) -> DomHandler:
    """CDP responses for a document with one element matched by any selector."""
    attrs = ["type", "file", "id", "upload"] if attributes is None else attributes

    def handler(method: str, params: dict[str, Any]) -> dict[str, Any]:  # noqa: ARG001
        if method == "DOM.getDocument":
            return {"root": {"nodeId": 1}}
        if method == "DOM.querySelector":
            return {"nodeId": node_id}
        if method == "DOM.describeNode":
            return {"node": {"nodeName": node_name, "attributes": list(attrs)}}
        if method == "Runtime.evaluate":
            return {"result": {"type": "boolean", "value": change_value}}
        return {}

    return handler


class FakeDebugger:
    """In-memory DebuggerTransport: tabs, attachment state and a scripted DOM."""

    def __init__(
        self,
        *,
        tabs: tuple[str, ...] = ("tab1",),
        externally_attached: tuple[str, ...] = (),
        handler: DomHandler | None = None,
    ) -> None:
        self.tabs = list(tabs)
        self.externally_attached = set(externally_attached)
        self.handler = handler or file_input_dom()
        self.attached: set[str] = set()
        self.attach_calls: list[str] = []
        self.detach_calls: list[str] = []
        self.commands: list[tuple[str, str, dict[str, Any]]] = []
        self.detach_error: Exception | None = None
        self.targets_error: Exception | None = None
        self.listener: Callable[[str], None] | None = None

    def set_tab_removed_listener(self, listener: Callable[[str], None] | None) -> None:
        self.listener = listener

    def get_targets(self) -> list[TargetInfo]:
        if self.targets_error is not None:
            raise self.targets_error
        return [
            TargetInfo(tab_id=t, attached=t in self.externally_attached or t in self.attached) for t in self.tabs
        ]

    def active_tab_id(self) -> str | None:
        return self.tabs[0] if self.tabs else None

    def attach(self, tab_id: str) -> str | None:
        self.attach_calls.append(tab_id)
        self.attached.add(tab_id)
        return f"session-{tab_id}"

    def detach(self, tab_id: str) -> None:
        self.detach_calls.append(tab_id)
        if self.detach_error is not None:
            raise self.detach_error
        self.attached.discard(tab_id)

    def send_command(self, tab_id: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if tab_id not in self.attached:
            raise HttpClientError(f"Debugger is not attached to tab {tab_id}")
        self.commands.append((tab_id, method, dict(params or {})))
        return self.handler(method, dict(params or {}))

    def remove_tab(self, tab_id: str) -> None:
        """Simulate the tab closing: the attachment disappears and the listener fires."""
        self.attached.discard(tab_id)
        if tab_id in self.tabs:
            self.tabs.remove(tab_id)
        if self.listener is not None:
            self.listener(tab_id)

    def methods(self) -> list[str]:
        return [m for _tab, m, _params in self.commands]


@pytest.fixture()
def fake_debugger() -> FakeDebugger:
    return FakeDebugger()


def png_data_url(width: int, height: int, color: tuple[int, ...] = (255, 0, 0), mode: str = "RGB") -> str:
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


@pytest.fixture()
def png() -> Callable[..., str]:
    return png_data_url


@pytest.fixture()
def make_debugger() -> Callable[..., FakeDebugger]:
    return FakeDebugger


@pytest.fixture()
def dom() -> Callable[..., DomHandler]:
    return file_input_dom
