"""Structured logging with per-run context using structlog and contextvars."""

import logging
from contextvars import ContextVar

import structlog

# Context variables for the current run
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)
current_operation: ContextVar[str | None] = ContextVar("current_operation", default=None)

_configured = False


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output and per-run context.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # Inject run context
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
    )

    _configured = True


def bind_run_context(run_id: str, operation: str) -> None:
    """Bind run context for all subsequent logs in this async context.

    Args:
        run_id: Run identifier
        operation: Name of the operation being executed (prompt, teach, scrape)
    """
    current_run_id.set(run_id)
    current_operation.set(operation)
    structlog.contextvars.bind_contextvars(run_id=run_id, operation=operation)


def clear_run_context() -> None:
    """Clear run context after the run completes."""
    current_run_id.set(None)
    current_operation.set(None)
    structlog.contextvars.clear_contextvars()


def get_run_logger(name: str = "mcp_server_action_cache") -> structlog.stdlib.BoundLogger:
    """Get a structlog logger carrying the run context."""
    return structlog.get_logger(name)


def get_current_run_id() -> str | None:
    """Get the current run ID from context."""
    return current_run_id.get()
