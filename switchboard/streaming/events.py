"""Execution events: a closed union of frozen dataclasses, one per wire frame kind."""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class Usage:
    """Token usage estimated from character counts. Advisory only, never billing-grade."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def estimate(cls, prompt_chars: int, completion_chars: int) -> "Usage":
        return cls(
            prompt_tokens=math.ceil(max(0, prompt_chars) / CHARS_PER_TOKEN),
            completion_tokens=math.ceil(max(0, completion_chars) / CHARS_PER_TOKEN),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


class ToolState(StrEnum):
    CALL = "call"
    RESULT = "result"


@dataclass(frozen=True)
class RouteEvent:
    selected_model: str
    fallback_model: str
    reasoning: str
    confidence: float


@dataclass(frozen=True)
class ModelSelectedEvent:
    model_used: str
    is_fallback: bool = False


@dataclass(frozen=True)
class TextDeltaEvent:
    delta: str


@dataclass(frozen=True)
class ToolInvocationEvent:
    tool_call_id: str
    tool_name: str
    state: ToolState
    args: dict[str, Any] | None = None
    result: Any = None


@dataclass(frozen=True)
class FinishEvent:
    full_text: str
    usage: Usage


@dataclass(frozen=True)
class ErrorEvent:
    kind: str
    message: str


Event = (
    RouteEvent
    | ModelSelectedEvent
    | TextDeltaEvent
    | ToolInvocationEvent
    | FinishEvent
    | ErrorEvent
)
