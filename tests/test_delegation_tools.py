"""Tests for delegation tool specs and prompt rendering."""

from switchboard.agents.profiles import AgentRegistry
from switchboard.delegation.tools import (
    delegation_prompt,
    delegation_tool,
    delegation_tools,
    summarize,
)


class TestDelegationTools:
    def test_one_tool_per_specialist(self) -> None:
        registry = AgentRegistry()
        specs = delegation_tools([registry.supervisor(), *registry.specialists()])
        names = {s.name for s in specs}
        assert "delegate_to_toby" in names
        assert "delegate_to_cleo" not in names
        assert len(specs) == len(registry.specialists())

    def test_tool_is_intercepted_not_handled(self) -> None:
        spec = delegation_tool(AgentRegistry().get("apu"))
        assert spec.handler is None
        assert not spec.sensitive
        assert spec.parameters["required"] == ["task"]
        assert spec.description.startswith("Delegate a task to Apu.")


class TestDelegationPrompt:
    def test_task_only(self) -> None:
        assert delegation_prompt({"task": "  Check the logs  "}) == "Check the logs"

    def test_full_arguments(self) -> None:
        prompt = delegation_prompt(
            {
                "task": "Draft a tweet",
                "context": "Launch is Friday",
                "priority": "HIGH",
                "requirements": "Under 200 chars",
            }
        )
        assert prompt == (
            "Draft a tweet\n\nContext: Launch is Friday\n\n"
            "Priority: high\n\nRequirements: Under 200 chars"
        )

    def test_medium_and_unknown_priority_are_omitted(self) -> None:
        assert delegation_prompt({"task": "x", "priority": "medium"}) == "x"
        assert delegation_prompt({"task": "x", "priority": "urgent"}) == "x"


class TestSummarize:
    def test_short_text_untouched(self) -> None:
        assert summarize("  done  ", 100) == "done"

    def test_long_text_trimmed(self) -> None:
        out = summarize("a" * 50, 10)
        assert len(out) == 10
        assert out.endswith("…")

    def test_non_positive_limit_disables_trim(self) -> None:
        assert summarize("a" * 50, 0) == "a" * 50
