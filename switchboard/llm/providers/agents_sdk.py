"""ModelInvoker over the OpenAI Agents SDK: Runner.run_streamed with graph-owned tool execution."""

import json
import logging
import uuid
from typing import Any, AsyncIterator

from switchboard.llm.protocol import InvocationRequest, ToolCall, ToolHandler
from switchboard.tools.registry import ToolSpec

logger = logging.getLogger(__name__)


def _get_response_delta_type() -> type | None:
    """ResponseTextDeltaEvent type for stream delta detection; None if openai not available."""
    try:
        from openai.types.responses import ResponseTextDeltaEvent
        return ResponseTextDeltaEvent
    except Exception:
        return None


def get_stream_delta(event: Any, response_delta_type: type | None) -> str | None:
    """Extract text delta from raw_response_event; None for other event types."""
    if getattr(event, "type", None) != "raw_response_event":
        return None
    event_data = getattr(event, "data", None)
    if response_delta_type is not None and isinstance(event_data, response_delta_type):
        return getattr(event_data, "delta", None)
    if getattr(event_data, "type", None) == "response.output_text.delta":
        return getattr(event_data, "delta", None)
    return None


def _parse_args(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _to_tool_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def make_function_tool(spec: ToolSpec, handler: ToolHandler) -> Any:
    """Wrap a ToolSpec as an SDK FunctionTool whose invocation is routed to the graph's handler."""
    from agents import FunctionTool

    async def on_invoke_tool(ctx: Any, args_json: str) -> str:
        call_id = getattr(ctx, "tool_call_id", None) or f"call_{uuid.uuid4().hex[:12]}"
        call = ToolCall(call_id=str(call_id), name=spec.name, args=_parse_args(args_json))
        result = await handler(call)
        return _to_tool_output(result)

    return FunctionTool(
        name=spec.name,
        description=spec.description,
        params_json_schema=spec.parameters,
        on_invoke_tool=on_invoke_tool,
        strict_json_schema=False,
    )


class AgentsSDKInvoker:
    """Streams text deltas from an SDK Agent run. Tool calls go to request.tool_handler."""

    def __init__(self, model_registry: Any, max_turns: int = 10) -> None:
        self._models = model_registry
        self._max_turns = max_turns

    async def stream(self, request: InvocationRequest) -> AsyncIterator[str]:
        from agents import Agent, ModelSettings, Runner

        tools = []
        if request.tool_handler is not None:
            tools = [make_function_tool(spec, request.tool_handler) for spec in request.tools]
        agent = Agent(
            name=request.agent_name,
            instructions=request.instructions,
            model=self._models.get_model(request.model),
            tools=tools,
            # One tool call per model step keeps approval and hand-off strictly sequential
            model_settings=ModelSettings(parallel_tool_calls=False) if tools else ModelSettings(),
        )
        result = Runner.run_streamed(agent, request.messages, max_turns=self._max_turns)
        delta_type = _get_response_delta_type()
        try:
            async for event in result.stream_events():
                delta = get_stream_delta(event, delta_type)
                if delta:
                    yield delta
        finally:
            # Early exit (cancellation, client gone) must close the underlying stream
            result.cancel()
