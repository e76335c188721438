"""Explicit per-request context threaded through router, analyzer and execution graph."""

import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequestContext:
    """Caller identity and request scope. Passed explicitly; never stored globally."""

    user_id: str | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    thread_id: str | None = None
