"""
Tab automation tools organized by domain.

Each module provides focused functionality:
- base: Error taxonomy and protocol error mapping
- upload: File upload into <input type=file> elements
- image: Raster decode/encode, stitching, cropping
- compress: Adaptive compression under a size budget
"""

from .base import (
    AttachmentConflict,
    ElementNotFound,
    ElementTypeMismatch,
    InvalidCropSize,
    ProtocolError,
    SmartToolError,
    StagingError,
    ValidationError,
)
from .compress import CaptureOutput, CompressionState, compress_image, next_state, payload_size
from .image import CropRect, StitchPart, clamp_crop_rect, crop_and_resize, decode_image, encode_image, stitch_images
from .upload import ElementDescriptor, FileSource, UploadOptions, upload_file

__all__ = [
    # base
    "AttachmentConflict",
    "ElementNotFound",
    "ElementTypeMismatch",
    "InvalidCropSize",
    "ProtocolError",
    "SmartToolError",
    "StagingError",
    "ValidationError",
    # compress
    "CaptureOutput",
    "CompressionState",
    "compress_image",
    "next_state",
    "payload_size",
    # image
    "CropRect",
    "StitchPart",
    "clamp_crop_rect",
    "crop_and_resize",
    "decode_image",
    "encode_image",
    "stitch_images",
    # upload
    "ElementDescriptor",
    "FileSource",
    "UploadOptions",
    "upload_file",
]
