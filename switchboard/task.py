"""TaskDescriptor: normalized unit of work submitted to the engine."""

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping

__all__ = ["ContentKind", "TaskDescriptor", "task_from_message"]


class ContentKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"


@dataclass(frozen=True)
class TaskDescriptor:
    """Immutable task. Metadata carries hints such as forceModel, routerType and allowedTools."""

    content: str
    content_kind: ContentKind = ContentKind.TEXT
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "content_kind", ContentKind(self.content_kind))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def hint(self, key: str, default: Any = None) -> Any:
        """Return a metadata hint, treating empty strings as absent."""
        value = self.metadata.get(key, default)
        if isinstance(value, str) and not value.strip():
            return default
        return value

    @property
    def allowed_tools(self) -> list[str] | None:
        tools = self.metadata.get("allowedTools")
        if isinstance(tools, (list, tuple)):
            return [str(t) for t in tools]
        return None


def _describe_file(part: Mapping[str, Any]) -> tuple[str, str, dict[str, Any]]:
    """Return (placeholder text, kind, attachment metadata) for a file part."""
    name = part.get("name") or "attachment"
    mime = part.get("mimeType") or part.get("mediaType") or "unknown"
    size = part.get("size")
    url = part.get("url") or part.get("content")
    meta: dict[str, Any] = {
        "filename": name,
        "mimeType": mime,
        "fileSize": size if isinstance(size, int) else None,
        "imageUrl": url if mime.startswith("image/") and isinstance(url, str) else None,
    }
    if mime.startswith("image/"):
        return f"[ATTACHED IMAGE: {name}]", ContentKind.IMAGE, meta
    if mime == "application/pdf":
        return f"[ATTACHED PDF: {name}]", ContentKind.DOCUMENT, meta
    return f"[ATTACHED FILE: {name} ({mime})]", ContentKind.TEXT, meta


def task_from_message(
    message: str | list[Mapping[str, Any]],
    metadata: Mapping[str, Any] | None = None,
) -> TaskDescriptor:
    """Normalize a chat message (plain string or list of text/file parts) into a TaskDescriptor.

    Image attachments make the task `image`, PDFs make it `document`; other files stay `text`.
    Attachment facts of the last file part are merged into metadata.
    """
    meta = dict(metadata or {})
    if isinstance(message, str):
        return TaskDescriptor(content=message, content_kind=ContentKind.TEXT, metadata=meta)

    texts: list[str] = []
    saw_image = saw_pdf = False
    for part in message:
        ptype = part.get("type")
        if ptype == "text":
            text = part.get("text") or part.get("content") or ""
            if text:
                texts.append(str(text))
        elif ptype == "file":
            placeholder, kind, attachment = _describe_file(part)
            texts.append(placeholder)
            meta.update({k: v for k, v in attachment.items() if v is not None})
            saw_image = saw_image or kind == ContentKind.IMAGE
            saw_pdf = saw_pdf or kind == ContentKind.DOCUMENT

    if saw_image:
        kind = ContentKind.IMAGE
    elif saw_pdf:
        kind = ContentKind.DOCUMENT
    else:
        kind = ContentKind.TEXT
    content = "\n\n".join(texts) or "User message"
    return TaskDescriptor(content=content, content_kind=kind, metadata=meta)
