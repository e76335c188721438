"""Delegation: intent detection and the delegate_to_<agent> tool family."""

from switchboard.delegation.analyzer import (
    DelegationAnalyzer,
    DelegationIntent,
    HeuristicDelegationAnalyzer,
    Signal,
)
from switchboard.delegation.tools import (
    delegation_prompt,
    delegation_tool,
    delegation_tools,
    summarize,
)

__all__ = [
    "DelegationAnalyzer",
    "DelegationIntent",
    "HeuristicDelegationAnalyzer",
    "Signal",
    "delegation_prompt",
    "delegation_tool",
    "delegation_tools",
    "summarize",
]
