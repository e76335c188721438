"""Tool specifications and the registry the execution graph invokes tools through."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

ToolFn = Callable[[dict[str, Any]], Awaitable[Any]]


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "additionalProperties": False}


@dataclass(frozen=True)
class ToolSpec:
    """A callable tool as exposed to the model.

    `handler` is None for tools the graph intercepts itself (delegation).
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=_empty_schema)
    handler: ToolFn | None = None
    sensitive: bool = False


class ToolRegistry:
    """Name -> ToolSpec. Agent profiles reference tools by name."""

    def __init__(self, tools: list[ToolSpec] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for spec in tools or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            logger.warning("Tool %s registered twice; keeping the latest", spec.name)
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def resolve(self, names: list[str] | None) -> list[ToolSpec]:
        """Return specs for names (all tools when names is None). Unknown names are skipped."""
        if names is None:
            return list(self._tools.values())
        specs = []
        for name in names:
            spec = self._tools.get(name)
            if spec is None:
                logger.debug("Unknown tool %r requested; skipping", name)
                continue
            specs.append(spec)
        return specs
