"""
Raster decode/encode, stitching and cropping for captured screenshots.

Payloads are data URLs (``data:image/png;base64,...``) or bare base64 strings.
Rasters are never modified in place: every operation returns a new image.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from io import BytesIO
from typing import Any

from PIL import Image, UnidentifiedImageError

from ..diagnostics import DiagnosticsLog
from .base import InvalidCropSize, ValidationError

_LOGGER = logging.getLogger("mcp.tab_automation.image")

_PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
    "image/png": "PNG",
}


def _coord(value: Any) -> int:
    try:
        return int(round(float(value)))
    except (OverflowError, TypeError) as exc:
        raise ValueError(f"Invalid coordinate: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class StitchPart:
    payload: str
    y: int


@dataclass(frozen=True, slots=True)
class CropRect:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def coerce(cls, rect: CropRect | Mapping[str, Any]) -> CropRect:
        if isinstance(rect, CropRect):
            return rect
        return cls(
            x=_coord(rect.get("x", 0)),
            y=_coord(rect.get("y", 0)),
            width=_coord(rect.get("width", 0)),
            height=_coord(rect.get("height", 0)),
        )


def split_data_url(payload: str) -> tuple[str | None, str]:
    """Return (mime_type, base64_segment) for a data URL or bare base64 string."""
    if payload.startswith("data:") and "," in payload:
        header, data = payload.split(",", 1)
        mime = header[5:].split(";", 1)[0] or None
        return mime, data
    return None, payload


def decode_image(payload: str) -> Image.Image:
    """Decode an encoded image payload into a fully loaded raster."""
    if not isinstance(payload, str) or not payload:
        raise ValueError("Empty image payload")
    _mime, data = split_data_url(payload)
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc
    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unsupported or corrupt image payload: {exc}") from exc
    return img


def _flatten_alpha(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return img.convert("RGB")


def encode_image(img: Image.Image, fmt: str = "image/png", quality: float | None = None) -> str:
    """Encode a raster as a data URL. ``quality`` is 0..1 and only used by lossy formats."""
    pil_format = _PIL_FORMATS.get(fmt)
    if pil_format is None:
        raise ValidationError(
            tool="image",
            action="encode",
            reason=f"Unsupported image format: {fmt}",
            suggestion="Use image/jpeg, image/webp or image/png",
        )

    save_kwargs: dict[str, Any] = {}
    out = img
    if pil_format in ("JPEG", "WEBP"):
        q = 0.8 if quality is None else float(quality)
        save_kwargs["quality"] = max(1, min(95, int(round(q * 100))))
        if pil_format == "JPEG":
            out = _flatten_alpha(img)

    buffer = BytesIO()
    out.save(buffer, format=pil_format, **save_kwargs)
    return f"data:{fmt};base64," + base64.b64encode(buffer.getvalue()).decode()


def _coerce_part(part: StitchPart | Mapping[str, Any]) -> StitchPart:
    if isinstance(part, StitchPart):
        return part
    payload = part.get("dataUrl") or part.get("payload") or ""
    return StitchPart(payload=str(payload), y=_coord(part.get("y", 0)))


def stitch_images(
    parts: Iterable[StitchPart | Mapping[str, Any]],
    total_width: int,
    total_height: int,
    *,
    diagnostics: DiagnosticsLog | None = None,
) -> Image.Image:
    """Stitch vertically offset captures onto one opaque white canvas.

    Each part is drawn at (0, y) with its height clipped to the canvas. Parts that
    would contribute no rows, or that fail to decode, are skipped.
    """
    width = int(total_width)
    height = int(total_height)
    if width <= 0 or height <= 0:
        raise ValidationError(
            tool="stitch",
            action="validate",
            reason=f"Invalid canvas size {width}x{height}",
            suggestion="Pass positive total width and height in pixels",
        )

    canvas = Image.new("RGB", (width, height), (255, 255, 255))
    for index, raw_part in enumerate(parts):
        part = _coerce_part(raw_part)
        try:
            img = decode_image(part.payload)
        except ValueError as exc:
            if diagnostics is not None:
                diagnostics.record("stitch", f"Error stitching image part: {exc}", index=index, y=part.y)
            else:
                _LOGGER.warning("stitch part %d skipped: %s", index, exc)
            continue

        src_height = img.height
        if part.y + src_height > height:
            src_height = height - part.y
        if src_height <= 0:
            continue

        region = img.crop((0, 0, img.width, src_height))
        canvas.paste(_flatten_alpha(region), (0, part.y))
    return canvas


def clamp_crop_rect(rect: CropRect, width: int, height: int) -> CropRect:
    """Clamp a crop rectangle to a ``width`` x ``height`` raster.

    Negative origins shrink the matching dimension; overhang past the far edge is
    truncated. The result may have a non-positive size.
    """
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    if x < 0:
        w += x
        x = 0
    if y < 0:
        h += y
        y = 0
    if x + w > width:
        w = width - x
    if y + h > height:
        h = height - y
    return CropRect(x=x, y=y, width=w, height=h)


def crop_and_resize(
    payload: str,
    rect: CropRect | Mapping[str, Any],
    device_pixel_ratio: float = 1.0,
    target_width: float | None = None,
    target_height: float | None = None,
) -> Image.Image:
    """Crop a region of a capture and scale it to the output size.

    Output size is target * device_pixel_ratio when a target is given, otherwise
    the clamped crop size.
    """
    img = decode_image(payload)
    crop = clamp_crop_rect(CropRect.coerce(rect), img.width, img.height)
    if crop.width <= 0 or crop.height <= 0:
        raise InvalidCropSize(
            tool="crop",
            action="clamp",
            reason="Invalid calculated crop size (<=0). Element may not be visible or fully captured.",
            suggestion="Scroll the element into view or capture a larger area",
            details={"clamped": {"x": crop.x, "y": crop.y, "width": crop.width, "height": crop.height}},
        )

    dpr = float(device_pixel_ratio or 1.0)
    out_width = max(1, int(round(target_width * dpr))) if target_width else crop.width
    out_height = max(1, int(round(target_height * dpr))) if target_height else crop.height

    region = img.crop((crop.x, crop.y, crop.x + crop.width, crop.y + crop.height))
    if region.size == (out_width, out_height):
        return region
    return region.resize((out_width, out_height), Image.LANCZOS)


__all__ = [
    "CropRect",
    "StitchPart",
    "clamp_crop_rect",
    "crop_and_resize",
    "decode_image",
    "encode_image",
    "split_data_url",
    "stitch_images",
]
