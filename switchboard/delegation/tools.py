"""Delegation tools: one `delegate_to_<agent>` tool per specialist, run by the execution graph."""

from typing import Any

from switchboard.agents.profiles import AgentProfile
from switchboard.tools.registry import ToolSpec

PRIORITIES = ("low", "medium", "high")

_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "task": {
            "type": "string",
            "description": "What the specialist should do, in full sentences.",
        },
        "context": {
            "type": "string",
            "description": "Relevant facts from the conversation so far.",
        },
        "priority": {"type": "string", "enum": list(PRIORITIES)},
        "requirements": {"type": "string", "description": "Output format or constraints."},
    },
    "required": ["task"],
    "additionalProperties": False,
}


def delegation_tool(profile: AgentProfile) -> ToolSpec:
    """ToolSpec without a handler: the graph runs the specialist sub-run itself."""
    summary = profile.description or f"{profile.name} specialist"
    return ToolSpec(
        name=profile.delegation_tool,
        description=f"Delegate a task to {profile.name}. {summary}",
        parameters=_PARAMETERS,
    )


def delegation_tools(profiles: list[AgentProfile]) -> list[ToolSpec]:
    return [delegation_tool(p) for p in profiles if not p.supervisor]


def delegation_prompt(args: dict[str, Any]) -> str:
    """Render delegation tool arguments into the specialist's user turn."""
    task = str(args.get("task") or "").strip()
    lines = [task] if task else []
    context = str(args.get("context") or "").strip()
    if context:
        lines.append(f"Context: {context}")
    priority = str(args.get("priority") or "").strip().lower()
    if priority in PRIORITIES and priority != "medium":
        lines.append(f"Priority: {priority}")
    requirements = str(args.get("requirements") or "").strip()
    if requirements:
        lines.append(f"Requirements: {requirements}")
    return "\n\n".join(lines)


def summarize(text: str, limit: int) -> str:
    """Trim a specialist answer for the tool-result payload."""
    text = text.strip()
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(0, limit - 1)].rstrip() + "…"
