"""
Tool handlers organized by domain.

All handlers follow the signature: (automation, arguments) -> ToolResult
"""

from ..types import HandlerMap
from .capture import CAPTURE_HANDLERS
from .upload import UPLOAD_HANDLERS

ALL_HANDLERS: HandlerMap = {
    **UPLOAD_HANDLERS,
    **CAPTURE_HANDLERS,
}

__all__ = ["ALL_HANDLERS", "CAPTURE_HANDLERS", "UPLOAD_HANDLERS"]
