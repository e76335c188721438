"""OpenAI and OpenAI-compatible providers (OpenAI, Groq, Ollama, OpenRouter).

Endpoints without hosted tool support are driven through Chat Completions.
"""

import logging

from openai import AsyncOpenAI

from agents import OpenAIChatCompletionsModel, OpenAIResponsesModel
from switchboard.llm.protocol import ProviderConfig

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """Responses API for OpenAI proper; Chat Completions for third-party compatible endpoints."""

    provider_type = "openai_compatible"

    def build(
        self,
        config: ProviderConfig,
        model_name: str,
        api_key: str | None,
    ) -> OpenAIResponsesModel | OpenAIChatCompletionsModel:
        client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=api_key or "not-required",
            default_headers=config.default_headers or None,
            timeout=60.0,
        )
        if config.supports_hosted_tools:
            return OpenAIResponsesModel(model=model_name, openai_client=client)
        return OpenAIChatCompletionsModel(model=model_name, openai_client=client)
