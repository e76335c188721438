"""Entry point for the server process: settings -> logging -> services -> FastAPI -> uvicorn."""

from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from switchboard import secrets
from switchboard.agents.profiles import AgentRegistry
from switchboard.api.app import create_app
from switchboard.api.deps import Services
from switchboard.auth import StaticTokenAuthenticator
from switchboard.confirmation.policy import ConfirmationPolicy
from switchboard.confirmation.registry import ConfirmationRegistry
from switchboard.delegation.analyzer import HeuristicDelegationAnalyzer
from switchboard.execution.graph import AgentExecutionGraph, GraphConfig
from switchboard.execution.manager import ExecutionManager
from switchboard.history import SqliteChatHistoryStore
from switchboard.llm.providers.agents_sdk import AgentsSDKInvoker
from switchboard.llm.registry import ModelRegistry
from switchboard.llm.router import ModelRouter
from switchboard.logging_config import setup_logging
from switchboard.settings import get_setting, load_settings
from switchboard.tools.actions import ActionOutbox, action_tools
from switchboard.tools.builtin import builtin_tools
from switchboard.tools.registry import ToolRegistry

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _build_history(settings: dict[str, Any], project_root: Path) -> SqliteChatHistoryStore | None:
    if not get_setting(settings, "history.enabled", True):
        return None
    db_path = get_setting(settings, "history.db_path", "data/chat_history.db")
    return SqliteChatHistoryStore(project_root / db_path)


def build_services(settings: dict[str, Any], project_root: Path = _PROJECT_ROOT) -> Services:
    """Wire router, invoker, agents, tools, confirmations and the execution graph."""
    agents = AgentRegistry(settings)
    tools = ToolRegistry([*builtin_tools(), *action_tools(ActionOutbox())])
    confirmations = ConfirmationRegistry.from_settings(settings)
    history = _build_history(settings, project_root)
    invoker = AgentsSDKInvoker(
        ModelRegistry(settings, secrets_getter=secrets.get_secret),
        max_turns=int(get_setting(settings, "delegation.max_turns", 10)),
    )
    graph = AgentExecutionGraph(
        router=ModelRouter(settings),
        invoker=invoker,
        agents=agents,
        tools=tools,
        confirmations=confirmations,
        analyzer=HeuristicDelegationAnalyzer(agents),
        policy=ConfirmationPolicy(settings),
        history=history,
        config=GraphConfig.from_settings(settings),
        project_root=project_root,
    )
    return Services(
        manager=ExecutionManager(graph, confirmations),
        confirmations=confirmations,
        authenticator=StaticTokenAuthenticator.from_settings(settings, secrets.get_secret),
        history=history,
        history_limit=int(get_setting(settings, "history.context_messages", 20)),
    )


def main() -> None:
    """Synchronous entry for the server process."""
    load_dotenv(_PROJECT_ROOT / ".env")
    import uvicorn
    from agents import set_tracing_disabled

    set_tracing_disabled(True)
    settings = load_settings()
    setup_logging(_PROJECT_ROOT, settings)
    app = create_app(build_services(settings))
    uvicorn.run(
        app,
        host=str(get_setting(settings, "server.host", "127.0.0.1")),
        port=int(get_setting(settings, "server.port", 8070)),
        log_config=None,
    )


__all__ = ["build_services", "main"]
