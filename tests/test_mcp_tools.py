"""Tests for MCP server tools using FastMCP in-memory testing."""

import json
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from fastmcp import Client

from mcp_server_action_cache.actions import ActionKind, CachedAction
from mcp_server_action_cache.config import CacheSettings
from mcp_server_action_cache.observability import RunRecord
from mcp_server_action_cache.server import serve
from mcp_server_action_cache.session import AutomationSession


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def complete():
    return AsyncMock(return_value='[{"actionName": "accept_cookies"}, {"actionName": "click login"}]')


@pytest.fixture
async def client(page, complete, run_store, action_store) -> AsyncGenerator[Client, None]:
    """Create an in-memory FastMCP client backed by a scripted page."""

    def factory(runs, actions, run_id):
        return AutomationSession(page, complete, actions, runs, run_id, CacheSettings(page_settle_seconds=0))

    app = serve(run_store=run_store, action_store=action_store, session_factory=factory)

    async with Client(app) as client:
        yield client


def payload(result) -> dict:
    return json.loads(result.content[0].text)


class TestListTools:
    """Test that all expected tools are registered."""

    @pytest.mark.anyio
    async def test_list_tools(self, client: Client):
        tools = await client.list_tools()
        tool_names = {tool.name for tool in tools}

        assert tool_names == {
            "run_automation",
            "teach_action",
            "teach_actions",
            "scrape_page",
            "action_list",
            "action_delete",
            "action_clear",
            "run_list",
            "run_get",
            "run_export",
        }

    @pytest.mark.anyio
    async def test_run_automation_schema(self, client: Client):
        tools = await client.list_tools()
        tool = next(t for t in tools if t.name == "run_automation")

        assert tool.description is not None
        assert "instruction" in str(tool.inputSchema)


class TestAutomationTools:
    """Test teaching and running through the tools."""

    @pytest.mark.anyio
    async def test_teach_then_run_hits_cache(self, client: Client, page):
        taught = payload(
            await client.call_tool(
                "teach_action",
                {"url": "https://shop.example.com/", "name": "accept_cookies", "instruction": "click accept cookies"},
            )
        )
        assert taught["success"] is True
        assert taught["action"]["website"] == "shop.example.com"

        run = payload(await client.call_tool("run_automation", {"instruction": "accept cookies and log in", "url": "https://shop.example.com/"}))

        assert run["status"] == "completed"
        assert run["result"]["cacheHits"] == 1
        assert run["result"]["cacheMisses"] == 1
        assert run["cost"] == 2

    @pytest.mark.anyio
    async def test_teach_actions_continues_past_failures(self, client: Client):
        result = payload(
            await client.call_tool(
                "teach_actions",
                {
                    "url": "https://shop.example.com/",
                    "actions_to_teach": [
                        {"name": "get_price", "instruction": "get price", "kind": "extract"},
                        {"name": "login", "instruction": "click login"},
                    ],
                },
            )
        )

        assert [r["success"] for r in result["results"]] == [False, True]
        assert "MissingShape" in result["results"][0]["error"]

    @pytest.mark.anyio
    async def test_scrape_page_saves_into_run(self, client: Client, page, run_store):
        await run_store.create_run(RunRecord(run_id="run-1", instruction="x", url="https://shop.example.com/list"))
        page.default_extract = {"title": "Widget"}

        result = payload(
            await client.call_tool(
                "scrape_page",
                {"run_id": "run-1", "instruction": "get the title", "shape": {"title": "string"}, "save_name": "product"},
            )
        )

        assert result == {"success": True, "data": {"title": "Widget"}, "saved": True}
        assert (await run_store.get_run("run-1")).result["scrapedData"] == {"product": {"title": "Widget"}}

    @pytest.mark.anyio
    async def test_scrape_page_unknown_run(self, client: Client):
        result = await client.call_tool("scrape_page", {"run_id": "nope", "instruction": "x", "shape": {"a": "string"}})
        assert "Error" in result.content[0].text


class TestActionTools:
    """Test cache management tools."""

    @pytest.fixture
    async def seeded(self, action_store):
        for website in ("a.com", "b.com"):
            await action_store.save_cached_action(
                CachedAction(name="search", website=website, kind=ActionKind.ACT, instruction="click search", payload={"m": 1})
            )

    @pytest.mark.anyio
    async def test_action_list(self, client: Client, seeded):
        result = payload(await client.call_tool("action_list", {"website": "a.com"}))
        assert result["count"] == 1
        assert result["actions"][0]["website"] == "a.com"

    @pytest.mark.anyio
    async def test_action_delete(self, client: Client, seeded, action_store):
        action_id = (await action_store.list_cached_actions("a.com"))[0].id

        result = await client.call_tool("action_delete", {"action_id": action_id})
        assert "deleted successfully" in result.content[0].text

        missing = await client.call_tool("action_delete", {"action_id": action_id})
        assert "Error" in missing.content[0].text

    @pytest.mark.anyio
    async def test_action_clear(self, client: Client, seeded, action_store):
        result = payload(await client.call_tool("action_clear", {"website": "b.com"}))
        assert result["deleted"] == 1
        assert [a.website for a in await action_store.list_cached_actions()] == ["a.com"]


class TestRunTools:
    """Test run history and export tools."""

    @pytest.fixture
    async def stored_run(self, run_store):
        return await run_store.create_run(
            RunRecord(
                run_id="0123abcd-run",
                instruction="list products",
                logs=["🚀 started"],
                result={"scrapedData": {"data": [{"name": "Widget"}]}},
            )
        )

    @pytest.mark.anyio
    async def test_run_list(self, client: Client, stored_run):
        result = payload(await client.call_tool("run_list", {}))
        assert result["count"] == 1
        assert result["runs"][0]["run_id"] == "0123abcd-run"

    @pytest.mark.anyio
    async def test_run_get_by_prefix(self, client: Client, stored_run):
        result = payload(await client.call_tool("run_get", {"run_id": "0123"}))
        assert result["run_id"] == "0123abcd-run"
        assert result["logs"] == ["🚀 started"]

    @pytest.mark.anyio
    async def test_run_get_missing(self, client: Client):
        result = await client.call_tool("run_get", {"run_id": "zzz"})
        assert "not found" in result.content[0].text

    @pytest.mark.anyio
    async def test_run_export(self, client: Client, stored_run, tmp_path, monkeypatch):
        from mcp_server_action_cache.config import settings

        monkeypatch.setattr(settings.server, "results_dir", str(tmp_path / "exports"))

        result = payload(await client.call_tool("run_export", {"run_id": "0123abcd-run", "format": "csv"}))

        assert result["success"] is True
        assert (tmp_path / "exports" / "run-0123abcd-run-data.csv").read_text().splitlines() == ["name", '"Widget"']

    @pytest.mark.anyio
    async def test_run_export_without_data(self, client: Client, run_store):
        await run_store.create_run(RunRecord(run_id="empty-run", instruction="x"))
        result = await client.call_tool("run_export", {"run_id": "empty-run"})
        assert "No data" in result.content[0].text
