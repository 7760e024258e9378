"""CLI interface for the action-cache automation server."""

import asyncio
import json

import typer

from .actions import get_action_store
from .config import settings
from .exceptions import ActionCacheError
from .observability.store import get_run_store
from .session import run_automation, teach_on_site
from .utils import export_run_data

app = typer.Typer(help="Browser automation with cached, replayable actions")


@app.command()
def run(
    instruction: str = typer.Argument(..., help="What to do in the browser"),
    url: str = typer.Option(None, "--url", "-u", help="Page to open first"),
) -> None:
    """Plan an instruction into steps and execute them."""
    record = asyncio.run(run_automation(instruction, url, run_store=get_run_store(), action_store=get_action_store()))
    print(f"Run: {record.run_id}")
    print(f"Status: {record.status.value}")
    print(f"Cost: {record.cost}¢")
    if record.result:
        print(json.dumps(record.result, indent=2, default=str))
    if record.status.value == "failed":
        raise typer.Exit(code=1)


@app.command()
def teach(
    url: str = typer.Argument(..., help="Page on which the action applies"),
    name: str = typer.Argument(..., help="Action name"),
    instruction: str = typer.Argument(..., help="What the action does"),
    kind: str = typer.Option("act", "--kind", "-k", help="act or extract"),
    shape: str = typer.Option(None, "--shape", "-s", help='JSON shape for extract actions, e.g. \'{"title": "string"}\''),
) -> None:
    """Teach a named action on a site."""
    entry = {"name": name, "instruction": instruction, "kind": kind, "shape": shape}
    _, results = asyncio.run(teach_on_site(url, [entry], run_store=get_run_store(), action_store=get_action_store()))
    result = results[0]
    if not result.success:
        print(f"Error: {result.error}")
        raise typer.Exit(code=1)
    assert result.action is not None
    print(f"Taught '{result.action.name}' for {result.action.website}")


@app.command()
def actions(
    website: str = typer.Option(None, "--website", "-w", help="Only list actions for this hostname"),
) -> None:
    """List cached actions."""
    cached = asyncio.run(get_action_store().list_cached_actions(website))
    if not cached:
        print("No cached actions.")
        return
    for action in cached:
        print(f"[{action.id}] {action.website} :: {action.name} ({action.kind.value}) - {action.instruction}")


@app.command("clear-actions")
def clear_actions(
    website: str = typer.Option(None, "--website", "-w", help="Only clear actions for this hostname"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete cached actions for a website, or all of them."""
    scope = website or "all websites"
    if not yes:
        typer.confirm(f"Clear cached actions for {scope}?", abort=True)
    deleted = asyncio.run(get_action_store().clear_cache(website))
    print(f"Deleted {deleted} cached actions for {scope}")


@app.command()
def runs(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of runs"),
) -> None:
    """List recent automation runs."""
    records = asyncio.run(get_run_store().list_runs(limit=limit))
    if not records:
        print("No runs yet.")
        return
    for record in records:
        print(f"{record.run_id[:8]}  {record.status.value:<9}  {record.cost:>4}¢  {record.instruction[:60]}")


@app.command()
def export(
    run_id: str = typer.Argument(..., help="Run ID"),
    fmt: str = typer.Option("json", "--format", "-f", help="json or csv"),
) -> None:
    """Export a run's scraped data to the results directory."""
    record = asyncio.run(get_run_store().get_run(run_id))
    if record is None:
        print(f"Error: Run '{run_id}' not found")
        raise typer.Exit(code=1)
    try:
        path = export_run_data(record, fmt)
    except (ValueError, ActionCacheError) as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1) from e
    print(f"Exported to {path}")


@app.command()
def config() -> None:
    """Show current configuration."""
    print(f"Provider: {settings.llm.provider}")
    print(f"Model: {settings.llm.model_name}")
    print(f"Base URL: {settings.llm.base_url or '(default)'}")
    print(f"Headless: {settings.browser.headless}")
    print(f"Proxy: {settings.browser.proxy_server or '(none)'}")
    print(f"Max Steps: {settings.browser.max_steps}")
    print(f"Database: {settings.cache.get_db_path()}")
    print(f"Costs (learn/teach/scrape): {settings.cache.learn_cost}/{settings.cache.teach_cost}/{settings.cache.scrape_cost}¢")
    print(f"Max Pages: {settings.cache.max_pages}")
    print(f"Results Dir: {settings.get_results_dir()}")


@app.command()
def server() -> None:
    """Start the MCP server."""
    from .server import main

    main()


if __name__ == "__main__":
    app()
