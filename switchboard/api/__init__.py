"""HTTP surface: chat streaming, execution control and the confirmation sub-protocol."""

from switchboard.api.app import create_app
from switchboard.api.deps import Services

__all__ = ["Services", "create_app"]
