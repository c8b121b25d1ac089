from __future__ import annotations

import re
from typing import Any

import pytest


class ScriptedChannel:
    """Synchronous channel: replies are built from the outbound message and dispatched inline."""

    def __init__(self, replies=None, send_error: Exception | None = None) -> None:  # noqa: ANN001
        self.replies = replies or (lambda _msg: [])
        self.send_error = send_error
        self.sent: list[dict[str, Any]] = []
        self.listeners: list = []

    def add_listener(self, listener) -> None:  # noqa: ANN001
        self.listeners.append(listener)

    def remove_listener(self, listener) -> None:  # noqa: ANN001
        self.listeners.remove(listener)

    def send_message(self, message: dict[str, Any]) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        for reply in self.replies(message):
            for listener in list(self.listeners):
                listener(reply)


def _response(request_id: str, **payload: Any) -> dict[str, Any]:
    return {"type": "file_operation_response", "responseToRequestId": request_id, "payload": payload}


def test_stage_returns_path_from_matching_response() -> None:
    from mcp_servers.tab_automation.stager import FileStager

    channel = ScriptedChannel(
        lambda msg: [
            _response("file-upload-0-unrelated", success=True, filePath="/wrong"),
            {"type": "something_else", "requestId": msg["requestId"]},
            _response(msg["requestId"], success=True, filePath="/tmp/staged/a.txt"),
        ]
    )
    stager = FileStager(channel, timeout=1.0)

    path = stager.stage(remote_url="https://example.com/a.txt", file_name_hint="a.txt")

    assert path == "/tmp/staged/a.txt"
    assert stager.pending_count() == 0
    assert channel.listeners == []


def test_stage_request_envelope() -> None:
    from mcp_servers.tab_automation.stager import FileStager

    channel = ScriptedChannel(lambda msg: [_response(msg["requestId"], success=True, filePath="/x")])
    FileStager(channel, timeout=1.0).stage(inline_data="aGVsbG8=", file_name_hint="hello.txt")

    (msg,) = channel.sent
    assert msg["type"] == "file_operation"
    assert re.fullmatch(r"file-upload-\d+-[0-9a-z]{9}", msg["requestId"])
    assert msg["payload"] == {"action": "prepareFile", "fileName": "hello.txt", "base64Data": "aGVsbG8="}


def test_stage_timeout_returns_none_and_cleans_up() -> None:
    from mcp_servers.tab_automation.diagnostics import DiagnosticsLog
    from mcp_servers.tab_automation.stager import FileStager

    channel = ScriptedChannel()
    diagnostics = DiagnosticsLog()
    stager = FileStager(channel, timeout=0.05, diagnostics=diagnostics)

    assert stager.stage(remote_url="https://example.com/a.txt") is None
    assert stager.pending_count() == 0
    assert channel.listeners == []
    (entry,) = diagnostics.entries("stage")
    assert entry.message == "File preparation request timed out"
    assert entry.level == "error"


def test_stage_send_failure_returns_none() -> None:
    from mcp_servers.tab_automation.diagnostics import DiagnosticsLog
    from mcp_servers.tab_automation.http_client import HttpClientError
    from mcp_servers.tab_automation.stager import FileStager

    channel = ScriptedChannel(send_error=HttpClientError("No side-channel peer connected"))
    diagnostics = DiagnosticsLog()
    stager = FileStager(channel, timeout=1.0, diagnostics=diagnostics)

    assert stager.stage(inline_data="aGk=") is None
    assert stager.pending_count() == 0
    assert channel.listeners == []
    assert "No side-channel peer connected" in diagnostics.entries("stage")[0].message


def test_stage_error_response_returns_none() -> None:
    from mcp_servers.tab_automation.diagnostics import DiagnosticsLog
    from mcp_servers.tab_automation.stager import FileStager

    channel = ScriptedChannel(lambda msg: [_response(msg["requestId"], success=False, error="HTTP 404")])
    diagnostics = DiagnosticsLog()
    stager = FileStager(channel, timeout=1.0, diagnostics=diagnostics)

    assert stager.stage(remote_url="https://example.com/missing") is None
    assert diagnostics.entries("stage")[0].message == "File host failed to prepare file: HTTP 404"


def test_stage_error_falls_back_to_top_level_error() -> None:
    from mcp_servers.tab_automation.side_channel import FileOperationResponse

    response = FileOperationResponse.from_message(
        {"type": "file_operation_response", "responseToRequestId": "r1", "payload": {}, "error": "disk full"}
    )
    assert response is not None
    assert response.success is False
    assert response.error == "disk full"


@pytest.mark.parametrize("kwargs", [{}, {"remote_url": "https://example.com/a", "inline_data": "aGk="}])
def test_stage_requires_exactly_one_source(kwargs) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.stager import FileStager
    from mcp_servers.tab_automation.tools.base import ValidationError

    channel = ScriptedChannel()
    with pytest.raises(ValidationError):
        FileStager(channel).stage(**kwargs)
    assert channel.sent == []


def test_local_channel_delivers_reply_asynchronously(tmp_path) -> None:  # noqa: ANN001
    from mcp_servers.tab_automation.side_channel import LocalChannel
    from mcp_servers.tab_automation.stager import FileStager

    def handler(msg: dict[str, Any]) -> dict[str, Any]:
        return _response(msg["requestId"], success=True, filePath=str(tmp_path / "x.bin"))

    channel = LocalChannel(handler)
    stager = FileStager(channel, timeout=5.0)

    assert stager.stage(inline_data="aGk=") == str(tmp_path / "x.bin")
    assert channel.listener_count() == 0
