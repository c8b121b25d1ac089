"""
Base utilities for tab automation tools.

Provides:
- SmartToolError: Structured errors for AI agents
- The error taxonomy raised by the upload workflow and image pipeline
- protocol_errors: maps transport failures to ProtocolError
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..http_client import HttpClientError


@dataclass
class SmartToolError(Exception):
    """Structured error with context for AI agents."""

    tool: str
    action: str
    reason: str
    suggestion: str
    details: dict[str, Any] = field(default_factory=dict)

    code: ClassVar[str] = "tool_error"

    def __str__(self) -> str:
        return f"[{self.tool}] {self.action} failed: {self.reason}. Suggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "tool": self.tool,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class ValidationError(SmartToolError):
    code = "validation_error"


class AttachmentConflict(SmartToolError):
    code = "attachment_conflict"


class ElementNotFound(SmartToolError):
    code = "element_not_found"


class ElementTypeMismatch(SmartToolError):
    code = "element_type_mismatch"


class StagingError(SmartToolError):
    code = "staging_error"


class InvalidCropSize(SmartToolError):
    code = "invalid_crop_size"


class ProtocolError(SmartToolError):
    code = "protocol_error"


@contextmanager
def protocol_errors(tool: str, action: str, suggestion: str) -> Generator[None, None, None]:
    """Re-raise transport failures inside the block as ProtocolError."""
    try:
        yield
    except HttpClientError as e:
        raise ProtocolError(tool=tool, action=action, reason=str(e), suggestion=suggestion) from e
