"""Caller identity. Resolved before any confirmation or execution control operation."""

import hmac
import logging
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


@runtime_checkable
class Authenticator(Protocol):
    def authenticate(self, token: str | None) -> str | None:
        """Return the user id for a bearer token, or None when the caller is unknown."""
        ...


class StaticTokenAuthenticator:
    """Bearer tokens from the `auth` settings section.

    `auth.tokens` maps literal tokens to user ids; `auth.token_secrets` maps user ids to secret
    names resolved through the keyring/env.
    """

    def __init__(
        self,
        tokens: dict[str, str],
        allow_anonymous: bool = False,
    ) -> None:
        self._tokens = {t: u for t, u in tokens.items() if t}
        self._allow_anonymous = allow_anonymous

    @classmethod
    def from_settings(
        cls,
        settings: dict[str, Any],
        secrets_getter: Callable[[str], str | None],
    ) -> "StaticTokenAuthenticator":
        cfg = settings.get("auth") or {}
        tokens = {str(t): str(u) for t, u in (cfg.get("tokens") or {}).items()}
        for user_id, secret_name in (cfg.get("token_secrets") or {}).items():
            token = secrets_getter(str(secret_name))
            if token:
                tokens[token] = str(user_id)
            else:
                logger.warning("Auth secret %s for user %s is not set", secret_name, user_id)
        allow_anonymous = bool(cfg.get("allow_anonymous", False))
        if not tokens and not allow_anonymous:
            logger.warning("No API tokens configured; every request will be rejected")
        return cls(tokens, allow_anonymous=allow_anonymous)

    def authenticate(self, token: str | None) -> str | None:
        if token:
            for known, user_id in self._tokens.items():
                if hmac.compare_digest(known.encode(), token.encode()):
                    return user_id
            return None
        return ANONYMOUS if self._allow_anonymous else None
