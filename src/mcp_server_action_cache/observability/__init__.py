"""Observability module for run tracking, logging, and run journals."""

from .journal import RunJournal
from .logging import bind_run_context, clear_run_context, get_run_logger, setup_structured_logging
from .models import RunRecord, RunStatus
from .store import RunStore

__all__ = [
    "RunJournal",
    "RunRecord",
    "RunStatus",
    "RunStore",
    "bind_run_context",
    "clear_run_context",
    "get_run_logger",
    "setup_structured_logging",
]
