"""Entry points of the tab automation core.

`TabAutomation` wires the session registry, the file stager and the image
pipeline around injected host capabilities (debugger transport, side channel).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from contextlib import suppress
from typing import Any

from PIL import Image

from .config import AutomationConfig
from .debugger import CdpDebugger, DebuggerTransport
from .diagnostics import DiagnosticsLog
from .session_manager import SessionRegistry
from .side_channel import MessageChannel
from .side_channel_gateway import SideChannelGateway
from .stager import FileStager
from .tools.compress import CaptureOutput, compress_image
from .tools.image import CropRect, StitchPart, crop_and_resize, stitch_images
from .tools.upload import FileSource, UploadOptions, upload_file

_LOGGER = logging.getLogger("mcp.tab_automation.core")


class TabAutomation:
    def __init__(
        self,
        debugger: DebuggerTransport,
        *,
        channel: MessageChannel | None = None,
        config: AutomationConfig | None = None,
        diagnostics: DiagnosticsLog | None = None,
    ) -> None:
        self.config = config or AutomationConfig()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsLog()
        self.debugger = debugger
        self.registry = SessionRegistry(debugger, diagnostics=self.diagnostics)
        self.channel = channel
        self.stager = (
            FileStager(channel, timeout=self.config.stage_timeout, diagnostics=self.diagnostics)
            if channel is not None
            else None
        )

    @classmethod
    def from_config(cls, config: AutomationConfig | None = None) -> TabAutomation:
        """Build against a local Chrome debugging port and a side-channel gateway."""
        cfg = config or AutomationConfig.from_env()
        gateway = SideChannelGateway(host=cfg.channel_host, port=cfg.channel_port)
        gateway.start()
        return cls(CdpDebugger(cfg), channel=gateway, config=cfg)

    def close(self) -> None:
        for session in self.registry.sessions():
            self.registry.release(session.tab_id)
        if isinstance(self.debugger, CdpDebugger):
            self.debugger.close()
        if isinstance(self.channel, SideChannelGateway):
            with suppress(Exception):
                self.channel.stop()

    def upload_file(
        self,
        selector: str,
        source: FileSource,
        options: UploadOptions | None = None,
        *,
        tab_id: str | None = None,
    ) -> dict[str, Any]:
        return upload_file(
            self.registry,
            selector,
            source,
            options,
            tab_id=tab_id,
            stager=self.stager,
            diagnostics=self.diagnostics,
        )

    def stitch(
        self,
        parts: Iterable[StitchPart | Mapping[str, Any]],
        total_width: int,
        total_height: int,
    ) -> Image.Image:
        return stitch_images(parts, total_width, total_height, diagnostics=self.diagnostics)

    def crop_and_resize(
        self,
        payload: str,
        rect: CropRect | Mapping[str, Any],
        device_pixel_ratio: float = 1.0,
        target_width: float | None = None,
        target_height: float | None = None,
    ) -> Image.Image:
        return crop_and_resize(payload, rect, device_pixel_ratio, target_width, target_height)

    def compress(
        self,
        payload: str,
        *,
        scale: float = 1.0,
        quality: float | None = None,
        format: str | None = None,  # noqa: A002
        max_size_bytes: int | None = None,
    ) -> CaptureOutput:
        return compress_image(
            payload,
            scale=scale,
            quality=self.config.default_quality if quality is None else quality,
            format=format or self.config.default_format,
            max_size_bytes=max_size_bytes,
        )


__all__ = ["TabAutomation"]
