"""Logging for the switchboard server.

Every record carries the id of the execution it was emitted under (`-` outside a run), so the
interleaved output of concurrent streams can be followed per execution. Noisy client libraries
get their own levels from the `logging.loggers` section.
"""

import logging
import logging.handlers
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Iterator

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(execution_id)s]: %(message)s"

_execution_id: ContextVar[str] = ContextVar("switchboard_execution_id", default="-")


@contextmanager
def bind_execution(execution_id: str) -> Iterator[None]:
    """Tag log records emitted in this context (and tasks created from it) with execution_id."""
    token = _execution_id.set(execution_id)
    try:
        yield
    finally:
        _execution_id.reset(token)


class ExecutionContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "execution_id"):
            record.execution_id = _execution_id.get()
        return True


def _rotating_handler(project_root: Path, cfg: dict[str, Any]) -> logging.Handler:
    log_path = project_root / cfg["file"]
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(cfg.get("backup_count", 3)),
        encoding="utf-8",
    )


def _level(name: Any, default: int = logging.INFO) -> int:
    return getattr(logging, str(name).upper(), default)


def setup_logging(project_root: Path, settings: dict[str, Any]) -> None:
    """Configure the root logger from settings["logging"].

    The file handler rotates under project_root; an empty `file` turns it off. Console output
    is on by default since the server usually runs under a process manager that collects stderr.
    uvicorn is started with log_config=None, so its loggers propagate here too.
    """
    cfg = settings.get("logging", {})
    level = _level(cfg.get("level", "INFO"))
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    context = ExecutionContextFilter()

    handlers: list[logging.Handler] = []
    if cfg.get("file"):
        handlers.append(_rotating_handler(project_root, cfg))
    if cfg.get("log_to_console", True):
        handlers.append(logging.StreamHandler())

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
        h.addFilter(context)
        root.addHandler(h)

    for name, name_level in (cfg.get("loggers") or {}).items():
        logging.getLogger(name).setLevel(_level(name_level, level))
