"""Run journal: human-readable trace lines for a single run."""

import logging

from .store import RunStore

logger = logging.getLogger("mcp_server_action_cache.run")


class RunJournal:
    """Writes trace lines to the process log and, when bound to a run, to its stored log.

    A journal without a store (or run id) only logs, which keeps components
    usable outside a persisted run.
    """

    def __init__(self, store: RunStore | None = None, run_id: str | None = None):
        self.store = store
        self.run_id = run_id
        self.lines: list[str] = []

    async def log(self, message: str) -> None:
        """Record one trace line."""
        logger.info(f"[Run {self.run_id or '-'}] {message}")
        self.lines.append(message)
        if self.store is not None and self.run_id is not None:
            await self.store.append_log(self.run_id, message)
