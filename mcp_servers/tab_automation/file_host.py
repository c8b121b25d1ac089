"""File host: the receiving end of the side channel.

Answers `file_operation` / `prepareFile` requests by downloading the URL or
decoding the inline base64 payload into the staging directory.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any

from .config import AutomationConfig
from .http_client import HttpClientError, fetch_bytes
from .side_channel import PREPARE_FILE, FileOperationRequest, FileOperationResponse

_LOGGER = logging.getLogger("mcp.tab_automation.file_host")

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_file_name(raw: str | None) -> str:
    name = Path(str(raw or "")).name
    name = _UNSAFE_NAME_CHARS.sub("_", name).strip("._")
    return name[:120] or "uploaded-file"


def decode_base64_payload(data: str) -> bytes:
    """Decode base64 file data; a `data:...;base64,` prefix is tolerated."""
    raw = data.strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    raw = "".join(raw.split())
    raw += "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 data: {exc}") from exc


class FileHost:
    def __init__(self, config: AutomationConfig) -> None:
        self.config = config
        self.staging_dir = Path(config.staging_dir)

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        request = FileOperationRequest.from_message(message)
        if request is None:
            return None
        if request.action != PREPARE_FILE:
            return FileOperationResponse(
                request_id=request.request_id, success=False, error=f"Unsupported action: {request.action}"
            ).to_message()
        try:
            path = self.prepare_file(
                file_url=request.file_url, base64_data=request.base64_data, file_name=request.file_name
            )
        except (HttpClientError, ValueError, OSError) as exc:
            _LOGGER.warning("prepareFile failed request=%s: %s", request.request_id, exc)
            return FileOperationResponse(request_id=request.request_id, success=False, error=str(exc)).to_message()
        return FileOperationResponse(request_id=request.request_id, success=True, file_path=str(path)).to_message()

    def prepare_file(
        self,
        *,
        file_url: str | None = None,
        base64_data: str | None = None,
        file_name: str = "uploaded-file",
    ) -> Path:
        if file_url:
            body, _headers = fetch_bytes(file_url, self.config)
        elif base64_data:
            body = decode_base64_payload(base64_data)
        else:
            raise ValueError("Either fileUrl or base64Data is required")

        self.staging_dir.mkdir(parents=True, exist_ok=True)
        target_dir = self.staging_dir / uuid.uuid4().hex[:12]
        target_dir.mkdir()
        path = target_dir / sanitize_file_name(file_name)
        path.write_bytes(body)
        _LOGGER.info("staged %d bytes at %s", len(body), path)
        return path.resolve()

    def cleanup(self, max_age_s: float = 3600.0) -> int:
        """Remove staged files older than ``max_age_s``. Returns the number removed."""
        if not self.staging_dir.is_dir():
            return 0
        cutoff = time.time() - max(0.0, float(max_age_s))
        removed = 0
        for entry in self.staging_dir.iterdir():
            if not entry.is_dir():
                continue
            files = [f for f in entry.iterdir() if f.is_file()]
            if files and all(f.stat().st_mtime >= cutoff for f in files):
                continue
            for f in files:
                f.unlink(missing_ok=True)
                removed += 1
            try:
                entry.rmdir()
            except OSError:
                _LOGGER.warning("could not remove staging dir %s", entry)
        return removed


__all__ = ["FileHost", "decode_base64_payload", "sanitize_file_name"]
