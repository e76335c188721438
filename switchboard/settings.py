"""Load application settings from config/settings.yaml."""

from pathlib import Path
from typing import Any

import yaml

_DEFAULTS: dict[str, Any] = {
    "router": {
        "default_profile": "balanced",
        "allow_local": False,
        "long_content_chars": 1000,
        "profiles": {
            "balanced": {
                "default": "groq:gpt-oss-120b",
                "tools": "groq:gpt-oss-120b",
                "reasoning": "openai:gpt-5-mini",
                "vision": "openai:gpt-4o-mini",
                "fallback": "openai:gpt-4o-mini",
            },
            "fast": {
                "default": "groq:gpt-oss-120b",
                "tools": "groq:gpt-oss-120b",
                "reasoning": "groq:gpt-oss-120b",
                "vision": "openai:gpt-4o-mini",
                "fallback": "openai:gpt-4o-mini",
            },
            "balanced-local": {
                "default": "ollama:llama3.1:8b",
                "tools": "ollama:llama3.1:8b",
                "reasoning": "groq:gpt-oss-120b",
                "vision": "openai:gpt-4o-mini",
                "fallback": "groq:gpt-oss-120b",
            },
        },
        # Forced-model aliases accepted in metadata.forceModel
        "aliases": {
            "openai": "openai:gpt-4o-mini",
            "anthropic": "anthropic:claude-3-5-haiku-latest",
            "groq": "groq:gpt-oss-120b",
        },
    },
    # Model catalog: capabilities consulted by the router; provider used by the registry
    "models": {
        "openai:gpt-4o-mini": {"vision": True, "tools": True, "reasoning": True},
        "openai:gpt-5-mini": {"vision": False, "tools": True, "reasoning": True},
        "groq:gpt-oss-120b": {"vision": False, "tools": True, "reasoning": False},
        "anthropic:claude-3-5-haiku-latest": {"vision": True, "tools": True, "reasoning": True},
        "ollama:llama3.1:8b": {"vision": False, "tools": True, "reasoning": False, "local": True},
    },
    "providers": {
        "openai": {"type": "openai_compatible", "api_key_secret": "OPENAI_API_KEY"},
        "groq": {
            "type": "openai_compatible",
            "base_url": "https://api.groq.com/openai/v1",
            "api_key_secret": "GROQ_API_KEY",
            "supports_hosted_tools": False,
        },
        "anthropic": {"type": "anthropic", "api_key_secret": "ANTHROPIC_API_KEY"},
        "ollama": {
            "type": "openai_compatible",
            "base_url": "http://127.0.0.1:11434/v1",
            "api_key_literal": "ollama",
            "supports_hosted_tools": False,
        },
    },
    "delegation": {
        "auto_enable_threshold": 0.4,
        "force_threshold": 0.8,
        "max_hops": 1,
        "summary_chars": 2000,
        "max_turns": 10,
    },
    "confirmation": {
        "timeout_seconds": 120,
        "sweep_interval": 5.0,
        "sensitive_tools": [
            "createCalendarEvent",
            "sendGmailMessage",
            "postTweet",
            "uploadToDrive",
            "createDriveFile",
            "deleteDriveFile",
        ],
    },
    "agents": {},
    "history": {
        "enabled": True,
        "db_path": "data/chat_history.db",
        # Stored messages passed as context when a request names a thread
        "context_messages": 20,
    },
    "auth": {
        # token -> user_id; tokens may also be given as secret names via token_secrets
        "tokens": {},
        "token_secrets": {},
        # Treat unauthenticated callers as user "anonymous" (local development only)
        "allow_anonymous": False,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8070,
    },
    "logging": {
        "file": "logs/switchboard.log",
        "level": "INFO",
        "log_to_console": True,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
        "loggers": {
            "httpx": "WARNING",
            "openai": "WARNING",
            "LiteLLM": "WARNING",
            "uvicorn.access": "WARNING",
        },
    },
}

_cached: dict[str, Any] | None = None


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base recursively. Mutates base."""
    for key, value in overlay.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_default_settings() -> dict[str, Any]:
    """Return a deep copy of default settings."""
    return _deep_copy_nested(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'confirmation.timeout_seconds')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def reload_settings() -> None:
    """Clear the settings cache. Call after config files change."""
    global _cached
    _cached = None


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Load settings from config/settings.yaml. Returns merged defaults + file values."""
    global _cached
    if _cached is not None:
        return _cached

    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    path = config_dir / "settings.yaml"

    result = get_default_settings()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _deep_merge(result, data)
        except (yaml.YAMLError, OSError):
            pass

    _cached = result
    return result


def merge_settings(overlay: dict[str, Any]) -> dict[str, Any]:
    """Return defaults deep-merged with overlay, without touching the cache."""
    return _deep_merge(get_default_settings(), _deep_copy_nested(overlay))


def _deep_copy_nested(obj: Any) -> Any:
    """Return a deep copy of nested dicts/lists for defaults."""
    if isinstance(obj, dict):
        return {k: _deep_copy_nested(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_deep_copy_nested(x) for x in obj]
    return obj
