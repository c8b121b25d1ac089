"""Per-tab debugger attachment registry.

Invariants:
- at most one Session per tab id;
- every attach issued here is matched by exactly one detach (or by a
  tab-removal notification, after which the attachment no longer exists);
- detach is best-effort: failures are recorded and the entry is cleared anyway.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

from .debugger import DebuggerTransport
from .diagnostics import DiagnosticsLog
from .http_client import HttpClientError
from .tools.base import AttachmentConflict, ProtocolError

_LOGGER = logging.getLogger("mcp.tab_automation.session_manager")


@dataclass(frozen=True, slots=True)
class Session:
    tab_id: str
    attached_by_us: bool = True
    protocol_session_id: str | None = None


class SessionRegistry:
    """Owns the tab -> Session mapping for one debugger transport.

    All mutations go through acquire/release/on_tab_removed. The lock is
    re-entrant because transport events (tab removal) can be delivered on the
    thread that is in the middle of an attach or detach call.
    """

    def __init__(self, debugger: DebuggerTransport, *, diagnostics: DiagnosticsLog | None = None) -> None:
        self.debugger = debugger
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsLog()
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        debugger.set_tab_removed_listener(self.on_tab_removed)

    def acquire(self, tab_id: str) -> Session:
        """Return an exclusive Session for ``tab_id``, attaching if needed."""
        with self._lock:
            existing = self._sessions.get(tab_id)
            if existing is not None:
                _LOGGER.debug("debugger already attached by this registry tab=%s", tab_id)
                return existing

            try:
                targets = self.debugger.get_targets()
            except HttpClientError as e:
                raise ProtocolError(
                    tool="session",
                    action="get_targets",
                    reason=str(e),
                    suggestion="Ensure the browser is running with remote debugging enabled",
                ) from e

            if any(t.tab_id == tab_id and t.attached for t in targets):
                raise AttachmentConflict(
                    tool="session",
                    action="attach",
                    reason=f"Debugger is already attached to tab {tab_id} by another client or DevTools",
                    suggestion="Close DevTools or the other debugging client for this tab and retry",
                    details={"tabId": tab_id},
                )

            try:
                protocol_session_id = self.debugger.attach(tab_id)
            except HttpClientError as e:
                raise ProtocolError(
                    tool="session",
                    action="attach",
                    reason=str(e),
                    suggestion="Check that the tab still exists",
                    details={"tabId": tab_id},
                ) from e

            session = Session(tab_id=tab_id, attached_by_us=True, protocol_session_id=protocol_session_id)
            self._sessions[tab_id] = session
            _LOGGER.info("debugger attached tab=%s", tab_id)
            return session

    def release(self, tab_id: str) -> bool:
        """Detach the tab's session if this registry holds one. Never raises."""
        with self._lock:
            session = self._sessions.get(tab_id)
            if session is None:
                return False
            try:
                self.debugger.detach(tab_id)
                _LOGGER.info("debugger detached tab=%s", tab_id)
            except Exception as e:  # noqa: BLE001
                self.diagnostics.record("detach", f"Error detaching debugger from tab {tab_id}: {e}", tabId=tab_id)
            finally:
                self._sessions.pop(tab_id, None)
            return True

    def on_tab_removed(self, tab_id: str) -> None:
        """Tab closed or attachment dropped externally: forget the session unconditionally."""
        with self._lock:
            dropped = self._sessions.pop(tab_id, None)
        if dropped is not None:
            _LOGGER.info("session dropped on tab removal tab=%s", tab_id)

    def holds(self, tab_id: str) -> bool:
        with self._lock:
            return tab_id in self._sessions

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    @contextmanager
    def session(self, tab_id: str) -> Generator[Session, None, None]:
        """Acquire a session and always release it.

        Usage:
            with registry.session(tab_id) as session:
                registry.debugger.send_command(session.tab_id, "DOM.enable")
        """
        session = self.acquire(tab_id)
        try:
            yield session
        finally:
            self.release(tab_id)


__all__ = ["Session", "SessionRegistry"]
