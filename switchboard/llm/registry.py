"""ModelRegistry: maps 'provider:model' ids to SDK Model instances built from settings."""

import logging
from typing import Any, Callable

from switchboard.llm.protocol import ModelProvider, ProviderConfig, split_model_id
from switchboard.llm.providers.anthropic import AnthropicProvider
from switchboard.llm.providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def _dict_to_provider_config(provider_id: str, data: dict[str, Any]) -> ProviderConfig:
    return ProviderConfig(
        id=provider_id,
        type=str(data.get("type", "openai_compatible")),
        base_url=data.get("base_url"),
        api_key_secret=data.get("api_key_secret"),
        api_key_literal=data.get("api_key_literal"),
        default_headers=dict(data.get("default_headers") or {}),
        supports_hosted_tools=bool(data.get("supports_hosted_tools", True)),
    )


class ModelRegistry:
    """Resolves model ids ('groq:gpt-oss-120b') to cached SDK Model instances."""

    def __init__(
        self,
        settings: dict[str, Any],
        secrets_getter: Callable[[str], str | None],
    ) -> None:
        self._secrets = secrets_getter
        self._provider_configs: dict[str, ProviderConfig] = {}
        self._providers: dict[str, ModelProvider] = {}
        self._cache: dict[str, Any] = {}
        for pid, pdata in (settings.get("providers") or {}).items():
            if isinstance(pdata, dict):
                self._provider_configs[str(pid)] = _dict_to_provider_config(str(pid), pdata)
        self._register_defaults()

    def _register_defaults(self) -> None:
        openai_compat = OpenAICompatibleProvider()
        self._providers["openai"] = openai_compat
        self._providers["openai_compatible"] = openai_compat
        self._providers["anthropic"] = AnthropicProvider()

    def register_provider(self, provider: ModelProvider) -> None:
        """Add or replace a provider implementation for its provider_type."""
        self._providers[provider.provider_type] = provider

    def _resolve_key(self, cfg: ProviderConfig) -> str | None:
        if cfg.api_key_literal:
            return cfg.api_key_literal
        if cfg.api_key_secret:
            return self._secrets(cfg.api_key_secret)
        return None

    def get_model(self, model_id: str) -> Any:
        """Return cached or newly built Model instance for the model id."""
        if model_id in self._cache:
            return self._cache[model_id]
        provider_id, model_name = split_model_id(model_id)
        provider_cfg = self._provider_configs.get(provider_id)
        if not provider_cfg:
            raise KeyError(f"Unknown provider {provider_id!r} for model {model_id!r}")
        provider = self._providers.get(provider_cfg.type)
        if not provider:
            raise KeyError(
                f"Unknown provider type {provider_cfg.type!r} for provider id {provider_cfg.id!r}"
            )
        model_instance = provider.build(provider_cfg, model_name, self._resolve_key(provider_cfg))
        self._cache[model_id] = model_instance
        logger.debug("Built model %s via provider %s", model_id, provider_cfg.id)
        return model_instance

    def invalidate(self, model_id: str | None = None) -> None:
        """Invalidate cache after config change."""
        if model_id:
            self._cache.pop(model_id, None)
        else:
            self._cache.clear()
