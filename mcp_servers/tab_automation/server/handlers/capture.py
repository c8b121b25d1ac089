"""
Capture post-processing handlers: stitch, crop, compress.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ...tools.base import ValidationError
from ...tools.image import encode_image, split_data_url
from ..types import HandlerMap, ToolResult

if TYPE_CHECKING:
    from ...core import TabAutomation


def _optional_float(args: dict[str, Any], key: str) -> float | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            tool="capture",
            action="validate",
            reason=f"{key} must be a number",
            suggestion=f"Pass a numeric {key}",
        ) from e


def _optional_int(args: dict[str, Any], key: str) -> int | None:
    value = _optional_float(args, key)
    if value is None:
        return None
    try:
        return int(value)
    except (OverflowError, ValueError) as e:
        raise ValidationError(
            tool="capture",
            action="validate",
            reason=f"{key} must be a finite number",
            suggestion=f"Pass a numeric {key}",
        ) from e


@contextmanager
def _image_input(tool: str) -> Generator[None, None, None]:
    """Report an undecodable capture as bad input rather than an internal failure."""
    try:
        yield
    except ValueError as e:
        raise ValidationError(
            tool=tool,
            action="decode",
            reason=str(e),
            suggestion="Pass a PNG, JPEG or WebP image as a data URL or base64 string",
        ) from e


def _required_payload(args: dict[str, Any]) -> str:
    payload = args.get("dataUrl") or args.get("payload")
    if not isinstance(payload, str) or not payload:
        raise ValidationError(
            tool="capture",
            action="validate",
            reason="dataUrl is required",
            suggestion="Pass the captured image as a data URL or base64 string",
        )
    return payload


def _image_result(data_url: str, meta: dict[str, Any]) -> ToolResult:
    mime, data = split_data_url(data_url)
    return ToolResult.with_image(data, mime or "image/png", meta)


def handle_stitch(automation: TabAutomation, args: dict[str, Any]) -> ToolResult:
    parts = args.get("parts")
    if not isinstance(parts, list):
        raise ValidationError(
            tool="stitch",
            action="validate",
            reason="parts must be a list of {dataUrl, y}",
            suggestion="Pass the captured viewport slices in order",
        )
    width = _optional_int(args, "totalWidth") or 0
    height = _optional_int(args, "totalHeight") or 0
    with _image_input("stitch"):
        canvas = automation.stitch([p for p in parts if isinstance(p, dict)], width, height)
    fmt = str(args.get("format") or "image/png")
    return _image_result(encode_image(canvas, fmt, _optional_float(args, "quality")), {"width": width, "height": height})


def handle_crop(automation: TabAutomation, args: dict[str, Any]) -> ToolResult:
    payload = _required_payload(args)
    rect = args.get("rect")
    if not isinstance(rect, dict):
        raise ValidationError(
            tool="crop",
            action="validate",
            reason="rect must be {x, y, width, height}",
            suggestion="Pass the element bounds in physical pixels",
        )
    with _image_input("crop"):
        img = automation.crop_and_resize(
            payload,
            rect,
            _optional_float(args, "devicePixelRatio") or 1.0,
            _optional_float(args, "targetWidth"),
            _optional_float(args, "targetHeight"),
        )
    fmt = str(args.get("format") or "image/png")
    return _image_result(encode_image(img, fmt, _optional_float(args, "quality")), {"width": img.width, "height": img.height})


def handle_compress(automation: TabAutomation, args: dict[str, Any]) -> ToolResult:
    payload = _required_payload(args)
    max_size = _optional_int(args, "maxSizeBytes")
    with _image_input("compress"):
        output = automation.compress(
            payload,
            scale=_optional_float(args, "scale") or 1.0,
            quality=_optional_float(args, "quality"),
            format=args.get("format") or None,
            max_size_bytes=max_size or None,
        )
    meta = output.to_dict()
    meta.pop("dataUrl", None)
    return _image_result(output.payload, meta)


CAPTURE_HANDLERS: HandlerMap = {
    "image_stitch": handle_stitch,
    "image_crop": handle_crop,
    "image_compress": handle_compress,
}
