"""Raw CDP WebSocket connection (websocket-client)."""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, InvalidStateError, wait
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError

_LOGGER = logging.getLogger("mcp.tab_automation.session_cdp")


class CdpConnection:
    """Low-level CDP WebSocket connection.

    Commands may be routed to an attached target by passing ``session_id``
    (flattened ``Target.attachToTarget`` sessions share the browser socket).

    Safe to call from several threads. Each command waits on its own Future
    keyed by message id; whichever caller currently holds the read lock reads
    the next frame and resolves the Future it belongs to.
    """

    def __init__(self, ws_url: str, timeout: float = 5.0):
        self.ws = websocket.create_connection(ws_url, timeout=timeout, enable_multithread=True)
        self.ws_url = ws_url
        self.timeout = timeout
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._recv_lock = threading.Lock()
        self._next_id = 1
        self._pending: dict[int, Future] = {}
        self._event_sink: Callable[[dict[str, Any]], None] | None = None

    def set_event_sink(self, sink: Callable[[dict[str, Any]], None] | None) -> None:
        """Receive every CDP event seen while waiting for command responses."""
        self._event_sink = sink

    def _push_event(self, event: dict[str, Any]) -> None:
        sink = self._event_sink
        if sink is None:
            return
        try:
            sink(event)
        except Exception:  # noqa: BLE001
            _LOGGER.warning("CDP event sink failed for %s", event.get("method"), exc_info=True)

    def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        fut: Future = Future()
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1
            self._pending[msg_id] = fut

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        if session_id:
            msg["sessionId"] = session_id

        try:
            try:
                with self._send_lock:
                    self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                raise HttpClientError(str(exc)) from exc
            return self._wait_for(fut)
        finally:
            with self._lock:
                self._pending.pop(msg_id, None)

    def _wait_for(self, fut: Future) -> dict[str, Any]:
        deadline = time.time() + self.timeout
        while not fut.done():
            remaining = deadline - time.time()
            if remaining <= 0:
                raise HttpClientError("CDP response timed out")

            if not self._recv_lock.acquire(blocking=False):
                # Another caller is reading; it resolves our Future if our reply arrives first.
                wait([fut], timeout=min(0.05, remaining))
                continue

            events: list[dict[str, Any]] = []
            try:
                if not fut.done():
                    self._read_frame(min(0.5, remaining), events)
            finally:
                self._recv_lock.release()
            # Sinks run without the read lock so they may block without stalling other callers.
            for event in events:
                self._push_event(event)

        return fut.result()

    def _read_frame(self, timeout: float, events: list[dict[str, Any]]) -> None:
        try:
            self.ws.settimeout(timeout)
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            msg = str(exc).lower()
            if isinstance(exc, TimeoutError) or "timed out" in msg:
                return
            self._fail_pending(HttpClientError(str(exc)))
            raise HttpClientError(str(exc)) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return
        if not isinstance(data, dict):
            return

        if isinstance(data.get("method"), str) and "id" not in data:
            events.append(data)
            return

        with self._lock:
            fut = self._pending.get(data.get("id"))  # type: ignore[arg-type]
        if fut is None:
            # Reply to a command whose caller already gave up.
            return

        with suppress(InvalidStateError):
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict) and isinstance(err.get("message"), str):
                    fut.set_exception(HttpClientError(err["message"]))
                else:
                    fut.set_exception(HttpClientError(str(err)))
            else:
                result = data.get("result")
                fut.set_result(result if isinstance(result, dict) else {})

    def _fail_pending(self, exc: Exception) -> None:
        with self._lock:
            pending = list(self._pending.values())
        for fut in pending:
            with suppress(InvalidStateError):
                fut.set_exception(exc)

    def close(self) -> None:
        """Close the WebSocket connection.

        Shuts the raw socket down first: websocket-client close() can block on
        its close handshake.
        """
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(Exception):
                sock.close()


__all__ = ["CdpConnection"]
