"""
Adaptive capture compression.

Re-encodes a capture at decreasing quality, then decreasing scale, until the
payload fits a size budget or the attempt cap is reached. The retry policy is
a pure step function over `CompressionState`, so it can be tested without codecs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from PIL import Image

from ..config import CAPTURE_FORMATS
from .base import ValidationError
from .image import decode_image, encode_image, split_data_url

_LOGGER = logging.getLogger("mcp.tab_automation.compress")

MAX_ATTEMPTS = 10
MIN_QUALITY = 0.2
MIN_SCALE = 0.3
QUALITY_THRESHOLD = 0.3
REDUCTION_FACTOR = 0.85

Encoder = Callable[[str, float, float, str], str]


@dataclass(frozen=True, slots=True)
class CompressionState:
    quality: float
    scale: float
    attempts: int = 1


def next_state(state: CompressionState) -> CompressionState:
    """Lower quality while it is above the threshold, then lower scale."""
    if state.quality > QUALITY_THRESHOLD:
        return replace(
            state,
            quality=max(MIN_QUALITY, state.quality * REDUCTION_FACTOR),
            attempts=state.attempts + 1,
        )
    return replace(
        state,
        scale=max(MIN_SCALE, state.scale * REDUCTION_FACTOR),
        attempts=state.attempts + 1,
    )


def payload_size(payload: str) -> int:
    """Length of the base64 segment; approximates (overestimates) the byte size by ~4/3."""
    return len(split_data_url(payload)[1])


@dataclass(frozen=True, slots=True)
class CaptureOutput:
    payload: str
    mime_type: str
    attempts: int = 1
    quality: float = 0.8
    scale: float = 1.0
    size: int = 0
    budget_met: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataUrl": self.payload,
            "mimeType": self.mime_type,
            "attempts": self.attempts,
            "quality": round(self.quality, 4),
            "scale": round(self.scale, 4),
            "size": self.size,
            "budgetMet": self.budget_met,
        }


def compress_once(payload: str, scale: float, quality: float, fmt: str) -> str:
    """Decode, resize by ``scale`` and re-encode at ``quality``."""
    img = decode_image(payload)
    width = max(1, int(round(img.width * scale)))
    height = max(1, int(round(img.height * scale)))
    if (width, height) != img.size:
        img = img.resize((width, height), Image.LANCZOS)
    return encode_image(img, fmt, quality)


def compress_image(
    payload: str,
    *,
    scale: float = 1.0,
    quality: float = 0.8,
    format: str = "image/jpeg",  # noqa: A002
    max_size_bytes: int | None = None,
    encoder: Encoder | None = None,
) -> CaptureOutput:
    """Compress a capture, optionally iterating until it fits ``max_size_bytes``.

    An unmet budget is not an error: the last attempt is returned with
    ``budget_met=False``.
    """
    if format not in CAPTURE_FORMATS:
        raise ValidationError(
            tool="compress",
            action="validate",
            reason=f"Unsupported output format: {format}",
            suggestion="Use image/jpeg or image/webp",
        )
    encode = encoder or compress_once

    state = CompressionState(quality=float(quality), scale=float(scale))
    result = encode(payload, state.scale, state.quality, format)
    size = payload_size(result)

    if not max_size_bytes:
        return CaptureOutput(
            payload=result, mime_type=format, quality=state.quality, scale=state.scale, size=size
        )

    while size > max_size_bytes and state.attempts < MAX_ATTEMPTS:
        stepped = next_state(state)
        if (stepped.quality, stepped.scale) == (state.quality, state.scale):
            # Both floors reached: another pass would produce the same output.
            break
        state = stepped
        result = encode(payload, state.scale, state.quality, format)
        size = payload_size(result)

    budget_met = size <= max_size_bytes
    if not budget_met:
        _LOGGER.info(
            "compression budget unmet size=%d budget=%d attempts=%d", size, max_size_bytes, state.attempts
        )
    return CaptureOutput(
        payload=result,
        mime_type=format,
        attempts=state.attempts,
        quality=state.quality,
        scale=state.scale,
        size=size,
        budget_met=budget_met,
    )


__all__ = [
    "MAX_ATTEMPTS",
    "MIN_QUALITY",
    "MIN_SCALE",
    "QUALITY_THRESHOLD",
    "REDUCTION_FACTOR",
    "CaptureOutput",
    "CompressionState",
    "compress_image",
    "compress_once",
    "next_state",
    "payload_size",
]
