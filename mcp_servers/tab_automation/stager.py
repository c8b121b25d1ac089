"""Materialize a remote URL or inline base64 payload as a local file via the side channel."""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager, suppress
from typing import Any

from .diagnostics import DiagnosticsLog
from .side_channel import FileOperationRequest, FileOperationResponse, MessageChannel, make_request_id
from .tools.base import ValidationError

_LOGGER = logging.getLogger("mcp.tab_automation.stager")

DEFAULT_STAGE_TIMEOUT = 30.0


class FileStager:
    """Single-attempt request/response correlation over a MessageChannel.

    Each ``stage`` call registers one pending Future keyed by its request id and
    one channel listener; both are removed exactly once when the call returns,
    whether it matched, timed out or failed to send.
    """

    def __init__(
        self,
        channel: MessageChannel,
        *,
        timeout: float = DEFAULT_STAGE_TIMEOUT,
        diagnostics: DiagnosticsLog | None = None,
        request_prefix: str = "file-upload",
    ) -> None:
        self.channel = channel
        self.timeout = float(timeout)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsLog()
        self.request_prefix = request_prefix
        self._lock = threading.Lock()
        self._pending: dict[str, Future] = {}

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def stage(
        self,
        remote_url: str | None = None,
        inline_data: str | None = None,
        file_name_hint: str = "uploaded-file",
    ) -> str | None:
        """Return the local path prepared by the file host, or None on failure/timeout."""
        if bool(remote_url) == bool(inline_data):
            raise ValidationError(
                tool="stage_file",
                action="validate",
                reason="Exactly one of remote_url or inline_data must be provided",
                suggestion="Pass either a file URL or base64 data",
            )

        request = FileOperationRequest(
            request_id=make_request_id(self.request_prefix),
            file_name=file_name_hint or "uploaded-file",
            file_url=remote_url,
            base64_data=inline_data,
        )
        rid = request.request_id

        with self._pending_request(rid) as fut:
            try:
                self.channel.send_message(request.to_message())
            except Exception as exc:  # noqa: BLE001
                self.diagnostics.record("stage", f"Error sending file operation: {exc}", level="error", requestId=rid)
                return None

            try:
                response: FileOperationResponse = fut.result(timeout=self.timeout)
            except FutureTimeoutError:
                self.diagnostics.record(
                    "stage", "File preparation request timed out", level="error", requestId=rid, timeout=self.timeout
                )
                return None

        if response.success and response.file_path:
            _LOGGER.info("file staged request=%s path=%s", rid, response.file_path)
            return response.file_path

        self.diagnostics.record(
            "stage",
            f"File host failed to prepare file: {response.error or 'unknown error'}",
            level="error",
            requestId=rid,
        )
        return None

    @contextmanager
    def _pending_request(self, request_id: str) -> Generator[Future, None, None]:
        fut: Future = Future()

        def _on_message(message: dict[str, Any]) -> None:
            response = FileOperationResponse.from_message(message)
            if response is None or response.request_id != request_id:
                return
            with self._lock:
                pending = self._pending.get(request_id)
            if pending is not None:
                with suppress(InvalidStateError):
                    pending.set_result(response)

        with self._lock:
            self._pending[request_id] = fut
        self.channel.add_listener(_on_message)
        try:
            yield fut
        finally:
            self.channel.remove_listener(_on_message)
            with self._lock:
                self._pending.pop(request_id, None)
            if not fut.done():
                fut.cancel()


__all__ = ["DEFAULT_STAGE_TIMEOUT", "FileStager"]
