"""Outbound action tools (calendar, email, social, drive).

Approved calls are recorded in an ActionOutbox for the connector layer to dispatch; the
connectors themselves live outside this service.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from switchboard.tools.registry import ToolSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundAction:
    id: str
    tool: str
    args: dict[str, Any]
    created_at: float = field(default_factory=time.time)


class ActionOutbox:
    """In-process queue of approved outbound actions."""

    def __init__(self) -> None:
        self._actions: list[OutboundAction] = []

    def record(self, tool: str, args: dict[str, Any]) -> OutboundAction:
        action = OutboundAction(id=f"act_{uuid.uuid4().hex[:12]}", tool=tool, args=dict(args))
        self._actions.append(action)
        logger.info("Queued outbound action %s (%s)", action.id, tool)
        return action

    def pending(self) -> list[OutboundAction]:
        return list(self._actions)

    def drain(self) -> list[OutboundAction]:
        actions, self._actions = self._actions, []
        return actions


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": {"type": "string"}}

_ACTIONS: tuple[tuple[str, str, dict[str, Any]], ...] = (
    (
        "createCalendarEvent",
        "Create a calendar event.",
        _schema(
            {
                "title": _STR,
                "startTime": _STR,
                "duration": _STR,
                "attendees": _STR_LIST,
                "description": _STR,
            },
            ["title", "startTime"],
        ),
    ),
    (
        "sendGmailMessage",
        "Send an email from the user's mailbox.",
        _schema({"to": _STR_LIST, "subject": _STR, "text": _STR}, ["to", "subject", "text"]),
    ),
    (
        "postTweet",
        "Publish a post on the user's X/Twitter account.",
        _schema({"text": {"type": "string", "maxLength": 280}}, ["text"]),
    ),
    (
        "uploadToDrive",
        "Upload a text file to the user's Google Drive.",
        _schema({"name": _STR, "content": _STR, "folderId": _STR}, ["name", "content"]),
    ),
)


def action_tools(outbox: ActionOutbox) -> list[ToolSpec]:
    """Sensitive ToolSpecs whose handlers record the approved action in outbox."""

    def _handler(tool: str):
        async def handle(args: dict[str, Any]) -> dict[str, Any]:
            action = outbox.record(tool, args)
            return {"status": "queued", "actionId": action.id}

        return handle

    return [
        ToolSpec(
            name=name,
            description=description,
            parameters=params,
            handler=_handler(name),
            sensitive=True,
        )
        for name, description, params in _ACTIONS
    ]
