"""Built-in tools available to every agent."""

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from switchboard.tools.registry import ToolSpec


async def _now(args: dict[str, Any]) -> dict[str, str]:
    tz_name = str(args.get("timezone") or "UTC")
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return {"error": f"Unknown timezone {tz_name!r}"}
    now = datetime.now(timezone.utc).astimezone(tz)
    return {"timezone": tz_name, "iso": now.isoformat(timespec="seconds")}


NOW_TOOL = ToolSpec(
    name="get_current_time",
    description="Current date and time. Optional IANA timezone name (default UTC).",
    parameters={
        "type": "object",
        "properties": {
            "timezone": {"type": "string", "description": "IANA timezone, e.g. Europe/Paris"},
        },
        "additionalProperties": False,
    },
    handler=_now,
)


def builtin_tools() -> list[ToolSpec]:
    return [NOW_TOOL]
