"""Server-facing boundary for the tab automation core.

Keep this package import light: importing `mcp_servers.tab_automation.server.types`
should not pull in the handlers (and with them Pillow and the CDP transport).
"""

from __future__ import annotations

from typing import Any

__all__ = ["call_tool"]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name == "call_tool":
        from .dispatch import call_tool

        return call_tool
    raise AttributeError(name)
