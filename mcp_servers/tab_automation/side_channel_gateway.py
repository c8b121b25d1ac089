from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
import time
from collections import deque
from typing import Any

import websockets

from .file_host import FileHost
from .http_client import HttpClientError
from .side_channel import ListenerSet, MessageListener

_LOGGER = logging.getLogger("mcp.tab_automation.side_channel_gateway")

SIDE_CHANNEL_PROTOCOL_VERSION = "2026-10-01"
_MAX_FRAME_BYTES = 64 * 1024 * 1024


def _now_ms() -> int:
    return int(time.time() * 1000)


class SideChannelGateway:
    """Local WebSocket endpoint for the file host peer.

    Design goals:
    - Sync API for the core (send_message / listeners), async server in a daemon thread.
    - One active peer; a reconnecting peer replaces the previous one.
    - Fail-closed: send_message refuses when no peer is connected.
    """

    def __init__(self, *, host: str = "127.0.0.1", port: int = 8766, send_timeout: float = 5.0) -> None:
        self.host = host
        self.port = int(port)
        self.send_timeout = float(send_timeout)

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._stopping: asyncio.Event | None = None

        # Typed as Any to avoid coupling to a specific websockets protocol class.
        self._server: Any | None = None
        self._ws: Any | None = None
        self._peer_role: str | None = None
        self._bind_error: str | None = None
        self._connected = threading.Event()

        self._listeners = ListenerSet()
        self._logs: deque[dict[str, Any]] = deque(maxlen=200)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._ready.clear()
        with self._lock:
            self._bind_error = None

        t = threading.Thread(target=self._run_thread, name="side-channel-gateway", daemon=True)
        self._thread = t
        t.start()

        if not self._ready.wait(timeout=max(0.05, float(wait_timeout))):
            raise RuntimeError(f"Side-channel gateway failed to start on {self.host}:{self.port}")
        with self._lock:
            bind_error = self._bind_error
        if bind_error:
            raise RuntimeError(f"Side-channel gateway bind failed on {self.host}:{self.port}: {bind_error}")

    def stop(self, *, timeout: float = 2.0) -> None:
        loop = self._loop
        stopping = self._stopping
        if loop is not None and stopping is not None:
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stopping.set)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "host": self.host,
                "port": self.port,
                "listening": self._server is not None,
                "connected": self._ws is not None,
                "peerRole": self._peer_role,
                "bindError": self._bind_error,
                "threadAlive": bool(self._thread is not None and self._thread.is_alive()),
                "listeners": len(self._listeners),
                "logs": list(self._logs)[-20:],
            }

    def is_connected(self) -> bool:
        with self._lock:
            return self._ws is not None

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        """Block until a peer has completed the hello handshake or timeout."""
        return self._connected.wait(timeout=max(0.0, float(timeout)))

    # ─────────────────────────────────────────────────────────────────────────
    # MessageChannel
    # ─────────────────────────────────────────────────────────────────────────

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        self._listeners.remove(listener)

    def send_message(self, message: dict[str, Any]) -> None:
        with self._lock:
            ws = self._ws
            loop = self._loop
        if ws is None or loop is None:
            raise HttpClientError("No side-channel peer connected. Start the file host and point it at the gateway.")
        try:
            asyncio.run_coroutine_threadsafe(self._ws_send_json(ws, message), loop).result(timeout=self.send_timeout)
        except Exception as exc:  # noqa: BLE001
            raise HttpClientError(f"Side-channel send failed: {exc}") from exc

    # ─────────────────────────────────────────────────────────────────────────
    # Server internals
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopping = asyncio.Event()
        try:
            server = await websockets.serve(
                self._handler,
                self.host,
                self.port,
                max_size=_MAX_FRAME_BYTES,
                ping_interval=None,
            )
        except OSError as exc:
            with self._lock:
                self._bind_error = str(exc)
                self._logs.append({"ts": _now_ms(), "level": "error", "message": f"bind failed: {exc}"})
            self._ready.set()
            return

        with self._lock:
            self._server = server
            sockets = list(getattr(server, "sockets", None) or [])
            if sockets:
                self.port = int(sockets[0].getsockname()[1])
            self._logs.append({"ts": _now_ms(), "level": "info", "message": f"listening on {self.host}:{self.port}"})
        _LOGGER.info("side-channel gateway listening on %s:%s", self.host, self.port)
        self._ready.set()

        try:
            await self._stopping.wait()
        finally:
            with self._lock:
                self._server = None
                ws = self._ws
            if ws is not None:
                with contextlib.suppress(Exception):
                    await ws.close()
            server.close()
            with contextlib.suppress(Exception):
                await server.wait_closed()
            self._disconnect(ws)

    async def _handler(self, ws) -> None:  # noqa: ANN001
        # Expect hello as first message.
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=2.5)
            hello = json.loads(raw)
        except Exception:  # noqa: BLE001
            with self._lock:
                self._logs.append({"ts": _now_ms(), "level": "warn", "message": "peer hello missing or invalid"})
            with contextlib.suppress(Exception):
                await ws.close(code=1002, reason="expected hello")
            return

        if not isinstance(hello, dict) or hello.get("type") != "hello":
            with contextlib.suppress(Exception):
                await ws.close(code=1002, reason="expected hello")
            return

        role = str(hello.get("role") or "peer")
        with self._lock:
            previous = self._ws
            self._ws = ws
            self._peer_role = role
        if previous is not None and previous is not ws:
            with contextlib.suppress(Exception):
                await previous.close(code=1000, reason="replaced")

        try:
            await self._ws_send_json(ws, {"type": "helloAck", "protocolVersion": SIDE_CHANNEL_PROTOCOL_VERSION})
        except Exception:  # noqa: BLE001
            self._disconnect(ws)
            return
        self._connected.set()
        _LOGGER.info("side-channel peer connected role=%s", role)

        try:
            async for raw_msg in ws:
                try:
                    msg = json.loads(raw_msg)
                except ValueError:
                    continue
                if isinstance(msg, dict):
                    self._listeners.dispatch(msg)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._disconnect(ws)

    def _disconnect(self, ws: Any) -> None:
        with self._lock:
            if ws is None or self._ws is not ws:
                return
            self._ws = None
            self._peer_role = None
            self._connected.clear()
            self._logs.append({"ts": _now_ms(), "level": "info", "message": "peer disconnected"})

    async def _ws_send_json(self, ws, payload: dict[str, Any]) -> None:  # noqa: ANN001
        await ws.send(json.dumps(payload, ensure_ascii=False))


async def serve_file_host(uri: str, host: FileHost) -> None:
    """Connect to a SideChannelGateway and answer file operations until the socket closes."""
    async with websockets.connect(uri, max_size=_MAX_FRAME_BYTES, ping_interval=None) as ws:
        await ws.send(json.dumps({"type": "hello", "role": "file_host"}))
        ack = json.loads(await ws.recv())
        if not isinstance(ack, dict) or ack.get("type") != "helloAck":
            raise RuntimeError(f"Unexpected handshake reply from {uri}")

        async for raw in ws:
            try:
                msg = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(msg, dict):
                continue
            reply = await asyncio.to_thread(host.handle_message, msg)
            if reply is not None:
                await ws.send(json.dumps(reply, ensure_ascii=False))


def run_file_host_client(uri: str, host: FileHost) -> None:
    asyncio.run(serve_file_host(uri, host))


__all__ = [
    "SIDE_CHANNEL_PROTOCOL_VERSION",
    "SideChannelGateway",
    "run_file_host_client",
    "serve_file_host",
]
