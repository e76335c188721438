"""Tool specs, registry, built-in and outbound action tools."""

from switchboard.tools.actions import ActionOutbox, OutboundAction, action_tools
from switchboard.tools.builtin import builtin_tools
from switchboard.tools.registry import ToolFn, ToolRegistry, ToolSpec

__all__ = [
    "ActionOutbox",
    "OutboundAction",
    "ToolFn",
    "ToolRegistry",
    "ToolSpec",
    "action_tools",
    "builtin_tools",
]
