"""MCP server exposing the action cache and automation runs as tools."""

import json
import logging
import os
import sys
from typing import Any


def _configure_stdio_logging() -> None:
    """Send all logging to stderr so stdout stays free for JSON-RPC in stdio mode."""
    os.environ.setdefault("BROWSER_USE_LOGGING_LEVEL", "warning")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers = [stderr_handler]
    root.setLevel(logging.WARNING)

    for logger_name in ["httpx", "httpcore", "asyncio", "browser_use", "openai", "anthropic"]:
        dep_logger = logging.getLogger(logger_name)
        dep_logger.setLevel(logging.WARNING)
        dep_logger.handlers = [stderr_handler]
        dep_logger.propagate = False


# Configure logging BEFORE importing browser_use and other noisy dependencies
_configure_stdio_logging()

# ruff: noqa: E402 - Intentional late imports after logging configuration
from fastmcp import FastMCP
from fastmcp.dependencies import CurrentContext
from fastmcp.server.context import Context
from fastmcp.server.tasks.config import TaskConfig

from .actions import ActionStore, TeachRequest, get_action_store
from .config import settings
from .exceptions import ActionCacheError
from .observability import RunRecord, RunStore, setup_structured_logging
from .observability.store import get_run_store
from .session import SessionFactory, _default_factory, run_automation as run_automation_session, scrape_into_run, teach_on_site
from .utils import export_run_data

logger = logging.getLogger("mcp_server_action_cache")
logger.setLevel(getattr(logging, settings.server.logging_level.upper()))


def _run_summary(run: RunRecord) -> dict[str, Any]:
    return {
        "run_id": run.run_id,
        "instruction": run.instruction,
        "url": run.url,
        "status": run.status.value,
        "cost": run.cost,
        "created": run.created_at.isoformat(),
        "duration_sec": round(run.duration_seconds, 1) if run.duration_seconds else None,
    }


async def _find_run(run_store: RunStore, run_id: str) -> RunRecord | None:
    """Look up a run by full ID, then by prefix among recent runs."""
    run = await run_store.get_run(run_id)
    if run:
        return run
    for candidate in await run_store.list_runs(limit=100):
        if candidate.run_id.startswith(run_id):
            return await run_store.get_run(candidate.run_id)
    return None


def serve(
    run_store: RunStore | None = None,
    action_store: ActionStore | None = None,
    session_factory: SessionFactory | None = None,
) -> FastMCP:
    """Create and configure the MCP server."""
    setup_structured_logging()

    server = FastMCP("mcp_server_action_cache")
    runs = run_store or get_run_store()
    actions = action_store or get_action_store()
    factory = session_factory or _default_factory

    # --- Automation Tools ---

    @server.tool(task=TaskConfig(mode="optional"))
    async def run_automation(
        instruction: str,
        url: str | None = None,
        ctx: Context = CurrentContext(),
    ) -> str:
        """
        Plan a natural-language instruction into steps and execute them.

        Steps matching a cached action for the site are replayed from the
        cache; everything else is performed fresh by the browser agent.

        Args:
            instruction: What to do, e.g. "search for laptops and open the first result"
            url: Page to open before planning

        Returns:
            JSON with the run summary and workflow result
        """
        await ctx.info(f"Starting: {instruction}")
        run = await run_automation_session(
            instruction,
            url,
            run_store=runs,
            action_store=actions,
            session_factory=factory,
        )
        await ctx.info(f"Run {run.run_id[:8]} {run.status.value}")
        return json.dumps({**_run_summary(run), "result": run.result}, indent=2, default=str)

    @server.tool()
    async def teach_action(
        url: str,
        name: str,
        instruction: str,
        kind: str = "act",
        shape: str | dict | None = None,
    ) -> str:
        """
        Teach a named action on a site so later runs can replay it.

        Args:
            url: Page on which the action applies
            name: Action name, unique per website
            instruction: What the action does, may contain {placeholders}
            kind: 'act' for interactions, 'extract' for data extraction
            shape: Field shape for extract actions, e.g. {"title": "string"}

        Returns:
            JSON with the teach result and the run ID
        """
        entry: dict[str, Any] = {"name": name, "instruction": instruction, "kind": kind, "shape": shape}
        run, results = await teach_on_site(url, [entry], run_store=runs, action_store=actions, session_factory=factory)
        return json.dumps({"run_id": run.run_id, **results[0].to_dict()}, indent=2, default=str)

    @server.tool()
    async def teach_actions(url: str, actions_to_teach: list[dict]) -> str:
        """
        Teach several actions on one site, in order.

        A failing entry does not stop the ones after it.

        Args:
            url: Page on which the actions apply
            actions_to_teach: List of {name, instruction, kind?, shape?} objects

        Returns:
            JSON with one teach result per entry
        """
        if not actions_to_teach:
            return "Error: No actions provided"
        entries: list[TeachRequest | dict[str, Any]] = list(actions_to_teach)
        run, results = await teach_on_site(url, entries, run_store=runs, action_store=actions, session_factory=factory)
        return json.dumps({"run_id": run.run_id, "results": [r.to_dict() for r in results]}, indent=2, default=str)

    @server.tool()
    async def scrape_page(
        run_id: str,
        instruction: str,
        shape: str | dict,
        save_name: str | None = None,
    ) -> str:
        """
        Extract data from a run's page and save it into the run's result.

        Args:
            run_id: Run whose URL is scraped and whose result receives the data
            instruction: What to extract
            shape: Field shape of the data, e.g. {"items": [{"name": "string"}]}
            save_name: Key under scrapedData (default "data")

        Returns:
            JSON with the extracted data and whether it was saved
        """
        try:
            data, saved = await scrape_into_run(
                run_id,
                instruction,
                shape,
                save_name,
                run_store=runs,
                action_store=actions,
                session_factory=factory,
            )
        except ActionCacheError as e:
            return f"Error: {e}"
        return json.dumps({"success": True, "data": data, "saved": saved}, indent=2, default=str)

    # --- Action Cache Tools ---

    @server.tool()
    async def action_list(website: str | None = None) -> str:
        """
        List cached actions, optionally for one website.

        Args:
            website: Hostname filter, e.g. "shop.example.com"

        Returns:
            JSON list of cached actions
        """
        cached = await actions.list_cached_actions(website)
        return json.dumps(
            {
                "actions": [
                    {
                        "id": a.id,
                        "name": a.name,
                        "website": a.website,
                        "kind": a.kind.value,
                        "instruction": a.instruction,
                        "created": a.created_at.isoformat() if a.created_at else None,
                    }
                    for a in cached
                ],
                "count": len(cached),
            },
            indent=2,
        )

    @server.tool()
    async def action_delete(action_id: int) -> str:
        """
        Delete a cached action by ID.

        Args:
            action_id: ID from action_list

        Returns:
            Success or error message
        """
        if await actions.delete_cached_action(action_id):
            return f"Action {action_id} deleted successfully"
        return f"Error: Action {action_id} not found"

    @server.tool()
    async def action_clear(website: str | None = None) -> str:
        """
        Clear cached actions for a website, or all of them.

        Args:
            website: Hostname to clear; omit to clear everything

        Returns:
            JSON with the number of deleted actions
        """
        deleted = await actions.clear_cache(website)
        return json.dumps({"success": True, "deleted": deleted, "website": website})

    # --- Run Tools ---

    @server.tool()
    async def run_list(limit: int = 20) -> str:
        """
        List recent automation runs.

        Args:
            limit: Maximum number of runs to return (default 20)

        Returns:
            JSON list of runs, newest first
        """
        recent = await runs.list_runs(limit=limit)
        return json.dumps({"runs": [_run_summary(r) for r in recent], "count": len(recent)}, indent=2)

    @server.tool()
    async def run_get(run_id: str) -> str:
        """
        Get full details of a run, including its logs and result.

        Args:
            run_id: Run ID (full or prefix)

        Returns:
            JSON object with run details
        """
        run = await _find_run(runs, run_id)
        if not run:
            return f"Error: Run '{run_id}' not found"
        return json.dumps(
            {
                **_run_summary(run),
                "timestamps": {
                    "started": run.started_at.isoformat() if run.started_at else None,
                    "completed": run.completed_at.isoformat() if run.completed_at else None,
                },
                "logs": run.logs,
                "result": run.result,
            },
            indent=2,
            default=str,
        )

    @server.tool()
    async def run_export(run_id: str, format: str = "json") -> str:
        """
        Export a run's scraped data to a JSON or CSV file.

        Args:
            run_id: Run ID (full or prefix)
            format: 'json' or 'csv'

        Returns:
            JSON with the path of the written file
        """
        run = await _find_run(runs, run_id)
        if not run:
            return f"Error: Run '{run_id}' not found"
        try:
            path = export_run_data(run, format)
        except ValueError as e:
            return f"Error: {e}"
        return json.dumps({"success": True, "path": str(path), "format": format})

    return server


def main() -> None:
    """Entry point for MCP server."""
    transport = settings.server.transport
    server_instance = serve()

    if transport == "stdio":
        server_instance.run(transport="stdio")
    elif transport in ("streamable-http", "sse"):
        logger.info(f"Starting MCP action-cache server (provider: {settings.llm.provider}, transport: {transport})")
        logger.info(f"HTTP server at http://{settings.server.host}:{settings.server.port}/mcp")
        server_instance.run(transport=transport, host=settings.server.host, port=settings.server.port)
    else:
        raise ValueError(f"Unknown transport: {transport}")


if __name__ == "__main__":
    main()
