"""
File upload tools for tab automation.

Provides:
- upload_file: set files on an <input type=file> resolved by CSS selector
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..diagnostics import DiagnosticsLog
from ..http_client import HttpClientError
from .base import ElementNotFound, ElementTypeMismatch, StagingError, ValidationError, protocol_errors

if TYPE_CHECKING:
    from ..session_manager import SessionRegistry
    from ..stager import FileStager

_LOGGER = logging.getLogger("mcp.tab_automation.upload")

_PROTOCOL_SUGGESTION = "Ensure the tab is still open and not paused in the debugger"


@dataclass(frozen=True, slots=True)
class FileSource:
    """Exactly one of the three fields must be set."""

    local_path: str | list[str] | None = None
    remote_url: str | None = None
    inline_data: str | None = None

    def kinds(self) -> list[str]:
        present = []
        if self.local_path:
            present.append("local_path")
        if self.remote_url:
            present.append("remote_url")
        if self.inline_data:
            present.append("inline_data")
        return present


@dataclass(frozen=True, slots=True)
class UploadOptions:
    file_name_hint: str = "uploaded-file"
    allow_multiple: bool = False


@dataclass(frozen=True, slots=True)
class ElementDescriptor:
    node_id: int
    node_name: str
    attributes: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_node(cls, node_id: int, node: dict[str, Any]) -> ElementDescriptor:
        flat = node.get("attributes") or []
        pairs = tuple((str(flat[i]), str(flat[i + 1])) for i in range(0, len(flat) - 1, 2))
        return cls(node_id=node_id, node_name=str(node.get("nodeName") or ""), attributes=pairs)

    def is_file_input(self) -> bool:
        if self.node_name.upper() != "INPUT":
            return False
        return any(name.lower() == "type" and value.lower() == "file" for name, value in self.attributes)


def change_event_expression(selector: str) -> str:
    return (
        "(function() {"
        f"  const element = document.querySelector({json.dumps(selector)});"
        "  if (element) {"
        "    element.dispatchEvent(new Event('change', { bubbles: true }));"
        "    return true;"
        "  }"
        "  return false;"
        "})()"
    )


def _validate(selector: str, source: FileSource, options: UploadOptions) -> None:
    if not isinstance(selector, str) or not selector.strip():
        raise ValidationError(
            tool="upload_file",
            action="validate",
            reason="Selector is required for file upload",
            suggestion="Pass a CSS selector for the <input type=file> element",
        )
    kinds = source.kinds()
    if len(kinds) != 1:
        raise ValidationError(
            tool="upload_file",
            action="validate",
            reason="Exactly one of filePath, fileUrl, or base64Data must be provided",
            suggestion="Pass a single file source",
            details={"provided": kinds},
        )
    if isinstance(source.local_path, list):
        if not all(isinstance(p, str) and p for p in source.local_path):
            raise ValidationError(
                tool="upload_file",
                action="validate",
                reason="filePath entries must be non-empty strings",
                suggestion="Pass absolute file paths",
            )
        if len(source.local_path) > 1 and not options.allow_multiple:
            raise ValidationError(
                tool="upload_file",
                action="validate",
                reason="Multiple files given but multiple=false",
                suggestion="Set multiple=true for inputs that accept several files",
            )


def _resolve_files(
    source: FileSource,
    options: UploadOptions,
    stager: FileStager | None,
) -> list[str]:
    if source.local_path:
        if isinstance(source.local_path, list):
            return list(source.local_path)
        return [source.local_path]

    if stager is None:
        raise StagingError(
            tool="upload_file",
            action="stage",
            reason="No file staging channel is configured for fileUrl/base64Data sources",
            suggestion="Start the file host or pass filePath instead",
        )
    path = stager.stage(
        remote_url=source.remote_url,
        inline_data=source.inline_data,
        file_name_hint=options.file_name_hint,
    )
    if not path:
        raise StagingError(
            tool="upload_file",
            action="stage",
            reason="Failed to prepare file for upload",
            suggestion="Check that the file host is running and the URL is reachable",
        )
    return [path]


def upload_file(
    registry: SessionRegistry,
    selector: str,
    source: FileSource,
    options: UploadOptions | None = None,
    *,
    tab_id: str | None = None,
    stager: FileStager | None = None,
    diagnostics: DiagnosticsLog | None = None,
) -> dict[str, Any]:
    """Upload file(s) to a file input element.

    The debugger session is held only for the protocol sequence and is released
    on every path, including validation and protocol failures.

    Args:
        registry: Session registry owning debugger attachment
        selector: CSS selector for the file input
        source: Local path(s), remote URL or inline base64 data
        options: File name hint for staged files and the multiple-files flag
        tab_id: Target tab (defaults to the transport's active tab)
        stager: Side-channel stager for remote/inline sources

    Returns:
        Dict with the uploaded paths, selector and count
    """
    opts = options or UploadOptions()
    diag = diagnostics if diagnostics is not None else registry.diagnostics
    _validate(selector, source, opts)

    files = _resolve_files(source, opts, stager)

    debugger = registry.debugger
    if tab_id is None:
        with protocol_errors("upload_file", "find_tab", _PROTOCOL_SUGGESTION):
            tab_id = debugger.active_tab_id()
        if not tab_id:
            raise ValidationError(
                tool="upload_file",
                action="find_tab",
                reason="No active tab found",
                suggestion="Open a tab or pass tab_id explicitly",
            )

    with registry.session(tab_id):

        def send(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
            return debugger.send_command(tab_id, method, params or {})

        with protocol_errors("upload_file", "enable_domains", _PROTOCOL_SUGGESTION):
            send("DOM.enable")
            send("Runtime.enable")

        with protocol_errors("upload_file", "find_input", _PROTOCOL_SUGGESTION):
            doc = send("DOM.getDocument", {"depth": -1, "pierce": True})
            root_id = (doc.get("root") or {}).get("nodeId")
            node_id = send("DOM.querySelector", {"nodeId": root_id, "selector": selector}).get("nodeId", 0)

        if not node_id:
            raise ElementNotFound(
                tool="upload_file",
                action="find_input",
                reason=f'Element with selector "{selector}" not found',
                suggestion="Check the selector or wait for the file input to render",
                details={"selector": selector},
            )

        with protocol_errors("upload_file", "describe_node", _PROTOCOL_SUGGESTION):
            node = send("DOM.describeNode", {"nodeId": node_id}).get("node") or {}
        element = ElementDescriptor.from_node(int(node_id), node)

        if element.node_name.upper() != "INPUT":
            raise ElementTypeMismatch(
                tool="upload_file",
                action="validate_element",
                reason=f'Element with selector "{selector}" is not an input element',
                suggestion="Target the <input type=file> itself, not its label or wrapper",
                details={"selector": selector, "nodeName": element.node_name},
            )
        if not element.is_file_input():
            raise ElementTypeMismatch(
                tool="upload_file",
                action="validate_element",
                reason=f'Element with selector "{selector}" is not a file input (type="file")',
                suggestion="Target an <input type=file> element",
                details={"selector": selector, "attributes": dict(element.attributes)},
            )

        with protocol_errors("upload_file", "set_files", _PROTOCOL_SUGGESTION):
            send("DOM.setFileInputFiles", {"nodeId": element.node_id, "files": files})

        dispatched = False
        try:
            ev = send("Runtime.evaluate", {"expression": change_event_expression(selector), "returnByValue": True})
            dispatched = bool((ev.get("result") or {}).get("value"))
            if ev.get("exceptionDetails"):
                diag.record("change_event", "change event script threw", selector=selector)
                dispatched = False
        except HttpClientError as e:
            diag.record("change_event", f"Error dispatching change event: {e}", selector=selector)

    _LOGGER.info("uploaded %d file(s) tab=%s selector=%s", len(files), tab_id, selector)
    return {
        "success": True,
        "message": "File(s) uploaded successfully",
        "files": files,
        "selector": selector,
        "fileCount": len(files),
        "tabId": tab_id,
        "changeEventDispatched": dispatched,
    }


__all__ = ["ElementDescriptor", "FileSource", "UploadOptions", "change_event_expression", "upload_file"]
