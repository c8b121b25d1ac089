"""
Tool dispatch: name -> handler, with error mapping onto ToolResult.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..http_client import HttpClientError
from ..tools.base import SmartToolError
from .handlers import ALL_HANDLERS
from .types import ToolResult

if TYPE_CHECKING:
    from ..core import TabAutomation

logger = logging.getLogger("mcp.tab_automation.dispatch")

_BULKY_ARGS = ("base64Data", "dataUrl", "payload")


def redact_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """Replace inline payloads with their length so logs stay readable."""
    safe: dict[str, Any] = {}
    for key, value in arguments.items():
        if key in _BULKY_ARGS and isinstance(value, str):
            safe[key] = f"<{len(value)} chars>"
        elif key == "parts" and isinstance(value, list):
            safe[key] = f"<{len(value)} parts>"
        else:
            safe[key] = value
    return safe


def call_tool(automation: TabAutomation, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
    args = arguments if isinstance(arguments, dict) else {}
    logger.info("tool=%s args=%s", name, redact_arguments(args))

    try:
        if not name:
            return ToolResult.error("Missing tool name", code="validation_error")
        handler = ALL_HANDLERS.get(name)
        if handler is None:
            return ToolResult.error(f"Unknown tool: {name}", code="unknown_tool", tool=name)
        return handler(automation, args)
    except SmartToolError as e:
        logger.info("tool_error tool=%s action=%s reason=%s", e.tool, e.action, e.reason)
        return ToolResult.error(e.reason, code=e.code, tool=e.tool, suggestion=e.suggestion, details=e.details)
    except HttpClientError as e:
        logger.info("http_error %s", str(e))
        return ToolResult.error(str(e), code="protocol_error", tool=name)
    except Exception as exc:
        logger.exception("tool_call_failed")
        return ToolResult.error(str(exc), code="internal_error", tool=name)


__all__ = ["call_tool", "redact_arguments"]
