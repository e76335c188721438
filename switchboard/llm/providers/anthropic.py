"""Claude models behind `anthropic:<model>` ids, served through LiteLLM (openai-agents[litellm])."""

import logging

from agents.extensions.models.litellm_model import LitellmModel

from switchboard.llm.protocol import ProviderConfig

logger = logging.getLogger(__name__)

_LITELLM_PREFIX = "anthropic/"


def litellm_model_name(model_name: str) -> str:
    """LiteLLM routes on the `anthropic/` prefix; names that already carry it pass through."""
    name = model_name.strip()
    return name if name.startswith(_LITELLM_PREFIX) else f"{_LITELLM_PREFIX}{name}"


class AnthropicProvider:
    provider_type = "anthropic"

    def build(
        self,
        config: ProviderConfig,
        model_name: str,
        api_key: str | None,
    ) -> LitellmModel:
        if not api_key:
            # LiteLLM falls back to ANTHROPIC_API_KEY from the environment
            logger.debug("Provider %s has no configured key for %s", config.id, model_name)
        return LitellmModel(
            model=litellm_model_name(model_name),
            base_url=config.base_url,
            api_key=api_key,
        )
