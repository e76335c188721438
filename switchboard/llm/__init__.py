"""LLM module: routing decision, model catalog, provider registry and invoker contract."""

from switchboard.llm.protocol import (
    InvocationRequest,
    ModelInvoker,
    ModelProvider,
    ModelSpec,
    ProviderConfig,
    RoutingDecision,
    ToolCall,
    ToolHandler,
)
from switchboard.llm.registry import ModelRegistry
from switchboard.llm.router import ModelRouter

__all__ = [
    "InvocationRequest",
    "ModelInvoker",
    "ModelProvider",
    "ModelRegistry",
    "ModelRouter",
    "ModelSpec",
    "ProviderConfig",
    "RoutingDecision",
    "ToolCall",
    "ToolHandler",
]
