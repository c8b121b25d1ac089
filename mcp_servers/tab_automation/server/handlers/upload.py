"""
Upload tool handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...tools.upload import FileSource, UploadOptions
from ..types import HandlerMap, ToolResult

if TYPE_CHECKING:
    from ...core import TabAutomation


def handle_upload(automation: TabAutomation, args: dict[str, Any]) -> ToolResult:
    """Upload a file into an <input type=file>.

    Arguments follow the tool schema: selector, filePath | fileUrl | base64Data,
    fileName, multiple, tabId.
    """
    file_path = args.get("filePath")
    if isinstance(file_path, (list, tuple)):
        file_path = [str(p) for p in file_path]
    source = FileSource(
        local_path=file_path or None,
        remote_url=args.get("fileUrl") or None,
        inline_data=args.get("base64Data") or None,
    )
    options = UploadOptions(
        file_name_hint=str(args.get("fileName") or "uploaded-file"),
        allow_multiple=bool(args.get("multiple", False)),
    )
    tab_id = args.get("tabId")
    result = automation.upload_file(
        str(args.get("selector") or ""),
        source,
        options,
        tab_id=str(tab_id) if tab_id not in (None, "") else None,
    )
    return ToolResult.json(result)


UPLOAD_HANDLERS: HandlerMap = {
    "file_upload": handle_upload,
}
