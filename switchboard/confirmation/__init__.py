"""Human-in-the-loop approval of sensitive tool calls."""

from switchboard.confirmation.policy import DEFAULT_SENSITIVE_TOOLS, ConfirmationPolicy
from switchboard.confirmation.registry import (
    ConfirmationOutcome,
    ConfirmationRegistry,
    OutcomeReason,
    PendingConfirmation,
    ResolveResult,
)

__all__ = [
    "DEFAULT_SENSITIVE_TOOLS",
    "ConfirmationOutcome",
    "ConfirmationPolicy",
    "ConfirmationRegistry",
    "OutcomeReason",
    "PendingConfirmation",
    "ResolveResult",
]
