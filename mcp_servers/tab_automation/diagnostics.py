"""Non-fatal outcome log.

Best-effort steps (stitch-part decode, debugger detach, change-event dispatch,
file staging) never raise. They record a `Diagnostic` here instead so callers and
tests can see what degraded.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

_LOGGER = logging.getLogger("mcp.tab_automation.diagnostics")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    level: str
    source: str
    message: str
    meta: dict[str, Any] = field(default_factory=dict)
    ts_ms: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ts": self.ts_ms,
            "level": self.level,
            "source": self.source,
            "message": self.message,
            **({"meta": dict(self.meta)} if self.meta else {}),
        }


class DiagnosticsLog:
    def __init__(self, maxlen: int = 200) -> None:
        self._lock = threading.Lock()
        self._entries: deque[Diagnostic] = deque(maxlen=max(1, int(maxlen)))

    def record(self, source: str, message: str, *, level: str = "warn", **meta: Any) -> Diagnostic:
        lvl = level if level in _LEVELS else "info"
        entry = Diagnostic(level=lvl, source=source, message=message[:2000], meta=meta)
        with self._lock:
            self._entries.append(entry)
        _LOGGER.log(_LEVELS[lvl], "%s: %s", source, entry.message)
        return entry

    def entries(self, source: str | None = None) -> list[Diagnostic]:
        with self._lock:
            items = list(self._entries)
        if source is None:
            return items
        return [e for e in items if e.source == source]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
