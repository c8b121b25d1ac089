"""Debugger transport: the attach/detach/command capability the session core consumes.

`DebuggerTransport` is the seam. `CdpDebugger` implements it over a single
browser-level CDP connection using flattened target sessions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Protocol

from .config import AutomationConfig
from .http_client import HttpClientError, http_get_json
from .session_cdp import CdpConnection

_LOGGER = logging.getLogger("mcp.tab_automation.debugger")

TabRemovedListener = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class TargetInfo:
    tab_id: str
    attached: bool = False
    type: str = "page"
    url: str = ""
    title: str = ""


class DebuggerTransport(Protocol):
    """Host capability for attaching a debugger to tabs and issuing commands."""

    def get_targets(self) -> list[TargetInfo]: ...

    def active_tab_id(self) -> str | None: ...

    def attach(self, tab_id: str) -> str | None: ...

    def detach(self, tab_id: str) -> None: ...

    def send_command(self, tab_id: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]: ...

    def set_tab_removed_listener(self, listener: TabRemovedListener | None) -> None: ...


class CdpDebugger:
    """DebuggerTransport backed by Chrome's remote debugging port."""

    def __init__(
        self,
        config: AutomationConfig,
        *,
        connection_factory: Callable[..., CdpConnection] = CdpConnection,
    ) -> None:
        self.config = config
        self._connection_factory = connection_factory
        self._conn: CdpConnection | None = None
        self._lock = threading.RLock()
        # tab_id -> CDP sessionId for targets attached through this transport
        self._sessions: dict[str, str] = {}
        self._on_tab_removed: TabRemovedListener | None = None

    def _connection(self) -> CdpConnection:
        with self._lock:
            if self._conn is not None:
                return self._conn
            version = http_get_json(f"{self.config.cdp_http_base}/json/version", timeout=2.0)
            ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
            if not isinstance(ws_url, str) or not ws_url:
                raise HttpClientError(f"No browser WebSocket endpoint at {self.config.cdp_http_base}")
            conn = self._connection_factory(ws_url, timeout=self.config.command_timeout)
            conn.set_event_sink(self._on_event)
            conn.send("Target.setDiscoverTargets", {"discover": True})
            self._conn = conn
            return conn

    def set_tab_removed_listener(self, listener: TabRemovedListener | None) -> None:
        self._on_tab_removed = listener

    def get_targets(self) -> list[TargetInfo]:
        res = self._connection().send("Target.getTargets")
        out: list[TargetInfo] = []
        for info in res.get("targetInfos") or []:
            if not isinstance(info, dict) or not isinstance(info.get("targetId"), str):
                continue
            out.append(
                TargetInfo(
                    tab_id=info["targetId"],
                    attached=bool(info.get("attached")),
                    type=str(info.get("type") or ""),
                    url=str(info.get("url") or ""),
                    title=str(info.get("title") or ""),
                )
            )
        return out

    def active_tab_id(self) -> str | None:
        for target in self.get_targets():
            if target.type == "page":
                return target.tab_id
        return None

    def attach(self, tab_id: str) -> str | None:
        res = self._connection().send("Target.attachToTarget", {"targetId": tab_id, "flatten": True})
        session_id = res.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise HttpClientError(f"Target.attachToTarget returned no sessionId for {tab_id}")
        with self._lock:
            self._sessions[tab_id] = session_id
        return session_id

    def detach(self, tab_id: str) -> None:
        with self._lock:
            session_id = self._sessions.pop(tab_id, None)
        if session_id is None:
            return
        self._connection().send("Target.detachFromTarget", {"sessionId": session_id})

    def send_command(self, tab_id: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        with self._lock:
            session_id = self._sessions.get(tab_id)
        if session_id is None:
            raise HttpClientError(f"Debugger is not attached to tab {tab_id}")
        return self._connection().send(method, params, session_id=session_id)

    def _on_event(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        params = event.get("params") if isinstance(event.get("params"), dict) else {}
        tab_id: str | None = None
        if method == "Target.targetDestroyed":
            tab_id = params.get("targetId")
        elif method == "Target.detachedFromTarget":
            tab_id = params.get("targetId")
            if not tab_id:
                sid = params.get("sessionId")
                with self._lock:
                    tab_id = next((t for t, s in self._sessions.items() if s == sid), None)
        if not isinstance(tab_id, str) or not tab_id:
            return

        with self._lock:
            self._sessions.pop(tab_id, None)
        listener = self._on_tab_removed
        if listener is not None:
            _LOGGER.info("target gone tab=%s event=%s", tab_id, method)
            listener(tab_id)

    def close(self) -> None:
        with self._lock:
            conn = self._conn
            self._conn = None
            self._sessions.clear()
        if conn is not None:
            with suppress(Exception):
                conn.close()


__all__ = ["CdpDebugger", "DebuggerTransport", "TabRemovedListener", "TargetInfo"]
