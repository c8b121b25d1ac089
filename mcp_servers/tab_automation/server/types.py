"""
Type definitions for tool responses and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..core import TabAutomation


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload for in-process callers; not part of the wire format.
    data: Any | None = None

    @classmethod
    def text(cls, text: str) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text or "")])

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=json.dumps(data, ensure_ascii=False))], data=data)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        code: str | None = None,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        payload: dict[str, Any] = {"ok": False, "error": message}
        if code:
            payload["code"] = code
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
        if details:
            payload["details"] = details
        return cls(
            content=[ToolContent(type="text", text=json.dumps(payload, ensure_ascii=False))],
            is_error=True,
            data=payload,
        )

    @classmethod
    def with_image(cls, data_b64: str, mime_type: str, data: dict[str, Any]) -> ToolResult:
        """Create result with JSON metadata text and image content. Omits image if data is empty."""
        text = ToolContent(type="text", text=json.dumps(data, ensure_ascii=False))
        if not data_b64:
            return cls(content=[text], data=data)
        return cls(content=[text, ToolContent(type="image", data=data_b64, mime_type=mime_type)], data=data)

    def to_content_list(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.content]


class ToolHandler(Protocol):
    """Protocol for tool handler functions."""

    def __call__(self, automation: TabAutomation, arguments: dict[str, Any]) -> ToolResult: ...


HandlerMap = dict[str, Callable[["TabAutomation", dict[str, Any]], ToolResult]]
