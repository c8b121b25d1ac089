"""Side-channel message envelope and channel capability.

Wire format (both directions are JSON objects):

    {"type": "file_operation", "requestId": "<prefix>-<ms>-<rand>",
     "payload": {"action": "prepareFile", "fileUrl"?, "base64Data"?, "fileName"}}

    {"type": "file_operation_response", "responseToRequestId": "...",
     "payload": {"success": bool, "filePath"?, "error"?}}
"""

from __future__ import annotations

import logging
import secrets
import string
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Protocol

_LOGGER = logging.getLogger("mcp.tab_automation.side_channel")

FILE_OPERATION = "file_operation"
FILE_OPERATION_RESPONSE = "file_operation_response"
PREPARE_FILE = "prepareFile"

MessageListener = Callable[[dict[str, Any]], None]

_BASE36 = string.digits + string.ascii_lowercase


def make_request_id(prefix: str = "file-upload") -> str:
    rand = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{rand}"


@dataclass(frozen=True, slots=True)
class FileOperationRequest:
    request_id: str
    file_name: str
    file_url: str | None = None
    base64_data: str | None = None
    action: str = PREPARE_FILE

    def to_message(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"action": self.action, "fileName": self.file_name}
        if self.file_url:
            payload["fileUrl"] = self.file_url
        if self.base64_data:
            payload["base64Data"] = self.base64_data
        return {"type": FILE_OPERATION, "requestId": self.request_id, "payload": payload}

    @classmethod
    def from_message(cls, msg: dict[str, Any]) -> FileOperationRequest | None:
        if msg.get("type") != FILE_OPERATION or not isinstance(msg.get("requestId"), str):
            return None
        payload = msg.get("payload") if isinstance(msg.get("payload"), dict) else {}
        file_url = payload.get("fileUrl")
        base64_data = payload.get("base64Data")
        return cls(
            request_id=msg["requestId"],
            file_name=str(payload.get("fileName") or "uploaded-file"),
            file_url=file_url if isinstance(file_url, str) and file_url else None,
            base64_data=base64_data if isinstance(base64_data, str) and base64_data else None,
            action=str(payload.get("action") or ""),
        )


@dataclass(frozen=True, slots=True)
class FileOperationResponse:
    request_id: str
    success: bool
    file_path: str | None = None
    error: str | None = None

    def to_message(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.file_path:
            payload["filePath"] = self.file_path
        if self.error:
            payload["error"] = self.error
        return {"type": FILE_OPERATION_RESPONSE, "responseToRequestId": self.request_id, "payload": payload}

    @classmethod
    def from_message(cls, msg: dict[str, Any]) -> FileOperationResponse | None:
        if msg.get("type") != FILE_OPERATION_RESPONSE:
            return None
        request_id = msg.get("responseToRequestId")
        if not isinstance(request_id, str) or not request_id:
            return None
        payload = msg.get("payload") if isinstance(msg.get("payload"), dict) else {}
        file_path = payload.get("filePath")
        error = payload.get("error") or msg.get("error")
        return cls(
            request_id=request_id,
            success=bool(payload.get("success")),
            file_path=file_path if isinstance(file_path, str) and file_path else None,
            error=str(error) if error else None,
        )


class MessageChannel(Protocol):
    """Outbound sender plus inbound subscription."""

    def send_message(self, message: dict[str, Any]) -> None: ...

    def add_listener(self, listener: MessageListener) -> None: ...

    def remove_listener(self, listener: MessageListener) -> None: ...


class ListenerSet:
    """Thread-safe listener list shared by channel implementations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[MessageListener] = []

    def add(self, listener: MessageListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: MessageListener) -> None:
        with self._lock, suppress(ValueError):
            self._listeners.remove(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def dispatch(self, message: dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception:  # noqa: BLE001
                _LOGGER.warning("side-channel listener failed", exc_info=True)


class LocalChannel:
    """In-process channel: outbound messages go to ``handler`` on a worker thread.

    Whatever the handler returns is delivered to the listeners as an inbound
    message, which mimics the asynchronous reply of an out-of-process host.
    """

    def __init__(self, handler: Callable[[dict[str, Any]], dict[str, Any] | None]) -> None:
        self._handler = handler
        self._listeners = ListenerSet()

    def send_message(self, message: dict[str, Any]) -> None:
        t = threading.Thread(target=self._deliver, args=(dict(message),), name="side-channel-local", daemon=True)
        t.start()

    def _deliver(self, message: dict[str, Any]) -> None:
        try:
            reply = self._handler(message)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("local side-channel handler failed")
            return
        if isinstance(reply, dict):
            self._listeners.dispatch(reply)

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        self._listeners.remove(listener)

    def listener_count(self) -> int:
        return len(self._listeners)


__all__ = [
    "FILE_OPERATION",
    "FILE_OPERATION_RESPONSE",
    "PREPARE_FILE",
    "FileOperationRequest",
    "FileOperationResponse",
    "ListenerSet",
    "LocalChannel",
    "MessageChannel",
    "MessageListener",
    "make_request_id",
]
