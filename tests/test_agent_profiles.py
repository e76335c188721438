"""Tests for the agent roster and instruction resolution."""

from pathlib import Path

from switchboard.agents.instructions import build_instructions, resolve_instructions
from switchboard.agents.profiles import AgentProfile, AgentRegistry, KeywordProfile, derive_keywords


class TestAgentRegistry:
    def test_builtin_roster(self) -> None:
        registry = AgentRegistry()
        assert registry.supervisor().id == "cleo"
        specialists = {p.id for p in registry.specialists()}
        assert specialists == {"toby", "ami", "peter", "emma", "apu", "jenn"}

    def test_settings_override_builtin(self) -> None:
        registry = AgentRegistry({"agents": {"jenn": {"tools": [], "aliases": ["jenny"]}}})
        jenn = registry.get("jenn")
        assert jenn.tools == ()
        assert "jenny" in jenn.mention_names
        assert jenn.keywords.primary

    def test_new_agent_gets_derived_keywords(self) -> None:
        registry = AgentRegistry(
            {
                "agents": {
                    "lex": {
                        "name": "Lex",
                        "description": "Contract review and compliance",
                        "tags": ["legal"],
                    }
                }
            }
        )
        lex = registry.get("lex")
        assert lex.name == "Lex"
        assert lex.keywords.primary == ("lex", "legal")
        assert lex.keywords.secondary == ("contract", "review", "compliance")

    def test_disabled_agent_is_hidden(self) -> None:
        registry = AgentRegistry({"agents": {"emma": {"enabled": False}}})
        assert registry.get("emma") is None
        assert "emma" not in {p.id for p in registry.specialists()}
        assert registry.for_tool("delegate_to_emma") is not None

    def test_for_tool(self) -> None:
        registry = AgentRegistry()
        assert registry.for_tool("delegate_to_peter").id == "peter"
        assert registry.for_tool("postTweet") is None
        assert registry.for_tool("delegate_to_nobody") is None

    def test_mention_names(self) -> None:
        toby = AgentRegistry().get("toby")
        assert toby.mention_names == ("toby", "toby-technical")
        assert toby.delegation_tool == "delegate_to_toby"

    def test_derive_keywords_skips_short_words(self) -> None:
        profile = AgentProfile(id="x", name="Xi", description="Do the big API migration work now")
        kw = derive_keywords(profile)
        assert kw.secondary == ("migration",)
        assert KeywordProfile().is_empty()


class TestInstructions:
    def test_literal_spec(self, tmp_path: Path) -> None:
        assert resolve_instructions("  Be terse.  ", tmp_path) == "Be terse."
        assert resolve_instructions("", tmp_path) == ""

    def test_plain_file(self, tmp_path: Path) -> None:
        (tmp_path / "p.md").write_text("From file\n", encoding="utf-8")
        assert resolve_instructions("p.md", tmp_path) == "From file"

    def test_jinja_file(self, tmp_path: Path) -> None:
        (tmp_path / "p.jinja2").write_text("Hi {{ agent.name }}", encoding="utf-8")
        profile = AgentProfile(id="a", name="Ann", instructions="p.jinja2")
        assert build_instructions(profile, [], tmp_path) == "Hi Ann"

    def test_bundled_supervisor_template_lists_specialists(self, tmp_path: Path) -> None:
        registry = AgentRegistry()
        text = build_instructions(registry.supervisor(), registry.specialists(), tmp_path)
        assert text.startswith("You are Cleo")
        assert "delegate_to_toby" in text
        assert "Apu (delegate_to_apu)" in text

    def test_bundled_specialist_template(self, tmp_path: Path) -> None:
        toby = AgentRegistry().get("toby")
        text = build_instructions(toby, [], tmp_path)
        assert text.startswith("You are Toby. Technical specialist")
