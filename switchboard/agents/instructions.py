"""Resolve agent instructions: literal text, plain file, or Jinja2 template."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from switchboard.agents.profiles import AgentProfile

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


def _render(path: Path, template_vars: dict[str, Any]) -> str:
    env = Environment(
        loader=FileSystemLoader(path.parent),
        autoescape=select_autoescape(enabled_extensions=()),
    )
    return env.get_template(path.name).render(**template_vars).strip()


def resolve_instructions(
    spec: str, project_root: Path, template_vars: dict[str, Any] | None = None
) -> str:
    """Resolve instructions from config: file path (with optional Jinja2) or literal string."""
    if not spec or not spec.strip():
        return ""
    path = project_root / spec.strip()
    if not path.exists() or not path.is_file():
        return spec.strip()
    if path.name.endswith(".jinja2"):
        return _render(path, template_vars or {})
    return path.read_text(encoding="utf-8").strip()


def build_instructions(
    profile: AgentProfile,
    specialists: list[AgentProfile],
    project_root: Path,
) -> str:
    """Instructions for profile: its configured spec, else the bundled template for its role."""
    template_vars = {"agent": profile, "specialists": specialists}
    if profile.instructions:
        return resolve_instructions(profile.instructions, project_root, template_vars)
    name = "supervisor.jinja2" if profile.supervisor else "specialist.jinja2"
    return _render(_PROMPTS_DIR / name, template_vars)
