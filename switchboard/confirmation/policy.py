"""Which tool calls need a human's approval, and how to describe them."""

from typing import Any

from switchboard.tools.registry import ToolSpec

DEFAULT_SENSITIVE_TOOLS = (
    "createCalendarEvent",
    "sendGmailMessage",
    "postTweet",
    "uploadToDrive",
    "createDriveFile",
    "deleteDriveFile",
)


def _join(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value) if value else ""


class ConfirmationPolicy:
    """Sensitive = listed in `confirmation.sensitive_tools` or flagged on the ToolSpec."""

    def __init__(self, settings: dict[str, Any] | None = None) -> None:
        cfg = (settings or {}).get("confirmation") or {}
        configured = cfg.get("sensitive_tools")
        names = DEFAULT_SENSITIVE_TOOLS if configured is None else configured
        self._sensitive = frozenset(str(n) for n in names)

    @property
    def sensitive_tools(self) -> frozenset[str]:
        return self._sensitive

    def is_sensitive(self, tool_name: str, spec: ToolSpec | None = None) -> bool:
        if spec is not None and spec.sensitive:
            return True
        return tool_name in self._sensitive

    def message(self, tool_name: str, args: dict[str, Any]) -> str:
        """Short human-readable summary shown to the approver."""
        match tool_name:
            case "createCalendarEvent":
                title = args.get("title") or args.get("summary") or "Untitled"
                when = args.get("date") or args.get("startTime") or "an unspecified date"
                attendees = _join(args.get("attendees")) or "none"
                return f"Create calendar event '{title}' on {when} (attendees: {attendees})"
            case "sendGmailMessage":
                to = _join(args.get("to")) or "unknown recipient"
                preview = str(args.get("text") or args.get("html") or "")[:100]
                return f"Send email to {to}: '{args.get('subject') or ''}' {preview}".rstrip()
            case "postTweet":
                text = str(args.get("text") or "")
                return f"Post tweet ({len(text)}/280 characters): {text}"
            case "uploadToDrive" | "createDriveFile":
                folder = args.get("folderId") or "root folder"
                return f"Upload '{args.get('name') or 'file'}' to Google Drive ({folder})"
            case "deleteDriveFile":
                target = args.get("fileId") or args.get("name") or ""
                return f"Delete Google Drive file {target}".rstrip()
            case _:
                return f"Execute {tool_name}. Please confirm this action."
