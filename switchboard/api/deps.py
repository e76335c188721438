"""Request dependencies: service container and caller identity."""

from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, status

from switchboard.auth import Authenticator
from switchboard.confirmation.registry import ConfirmationRegistry
from switchboard.execution.manager import ExecutionManager
from switchboard.history import ChatHistoryStore


@dataclass
class Services:
    """Everything the routes need; stored on app.state."""

    manager: ExecutionManager
    confirmations: ConfirmationRegistry
    authenticator: Authenticator
    history: ChatHistoryStore | None = None
    history_limit: int = 20


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user(request: Request, authorization: str | None = Header(default=None)) -> str:
    """Resolve the caller from `Authorization: Bearer <token>`; 401 when unknown."""
    token = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        token = value.strip() if scheme.lower() == "bearer" else None
        if token is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Unsupported authorization scheme"
            )
    user_id = get_services(request).authenticator.authenticate(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
