"""Built-in LLM providers and the Agents SDK invoker."""

from switchboard.llm.providers.agents_sdk import AgentsSDKInvoker
from switchboard.llm.providers.anthropic import AnthropicProvider
from switchboard.llm.providers.openai_compatible import OpenAICompatibleProvider

__all__ = ["AgentsSDKInvoker", "AnthropicProvider", "OpenAICompatibleProvider"]
