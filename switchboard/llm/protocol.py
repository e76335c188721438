"""LLM contracts: model catalog entries, provider configuration, routing decision, invoker protocol.

The engine only talks to ModelInvoker. Provider adapters live under switchboard.llm.providers.
"""

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from switchboard.task import TaskDescriptor
    from switchboard.tools.registry import ToolSpec


def split_model_id(model_id: str) -> tuple[str, str]:
    """'groq:gpt-oss-120b' -> ('groq', 'gpt-oss-120b'). Ids without a prefix map to 'openai'."""
    provider, sep, name = model_id.partition(":")
    if not sep:
        return "openai", model_id
    return provider, name


@dataclass(frozen=True)
class ModelSpec:
    """Catalog entry: capabilities consulted by the router."""

    id: str
    vision: bool = False
    tools: bool = True
    reasoning: bool = False
    local: bool = False

    @property
    def provider(self) -> str:
        return split_model_id(self.id)[0]

    @property
    def name(self) -> str:
        return split_model_id(self.id)[1]


@dataclass
class ProviderConfig:
    """Provider configuration from config/settings.yaml."""

    id: str
    type: str  # openai_compatible | anthropic
    base_url: str | None = None
    api_key_secret: str | None = None
    api_key_literal: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    # False for providers that do not support OpenAI hosted tool types
    supports_hosted_tools: bool = True


@dataclass(frozen=True)
class RoutingDecision:
    """Produced once per task by ModelRouter; attached to the execution for observability."""

    selected_model: str
    fallback_model: str
    reasoning: str
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))


@dataclass(frozen=True)
class ToolCall:
    """A tool call proposed by the model."""

    call_id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[ToolCall], Awaitable[Any]]


@dataclass
class InvocationRequest:
    """Everything one provider call needs.

    Tool calls are not returned as stream items: the provider awaits `tool_handler`
    for each call and feeds the returned value back to the model.
    """

    model: str
    agent_name: str
    instructions: str
    messages: list[dict[str, Any]]
    task: "TaskDescriptor"
    tools: list["ToolSpec"] = field(default_factory=list)
    tool_handler: ToolHandler | None = None


@runtime_checkable
class ModelInvoker(Protocol):
    """Model-invocation collaborator: lazily streams text deltas for one request."""

    def stream(self, request: InvocationRequest) -> AsyncIterator[str]: ...


@runtime_checkable
class ModelProvider(Protocol):
    """Builds SDK-compatible Model instances for one provider type."""

    provider_type: str

    def build(
        self,
        config: ProviderConfig,
        model_name: str,
        api_key: str | None,
    ) -> Any:
        """Return a Model instance compatible with OpenAI Agents SDK."""
        ...
