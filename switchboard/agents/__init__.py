"""Agent roster and instruction templates."""

from switchboard.agents.instructions import build_instructions, resolve_instructions
from switchboard.agents.profiles import (
    AgentProfile,
    AgentRegistry,
    KeywordProfile,
    delegation_tool_name,
)

__all__ = [
    "AgentProfile",
    "AgentRegistry",
    "KeywordProfile",
    "build_instructions",
    "delegation_tool_name",
    "resolve_instructions",
]
