"""Tests for the browser-use backed page adapter."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_server_action_cache.actions import ShapeDescriptor
from mcp_server_action_cache.actions.page import BrowserPage, describe_directive
from mcp_server_action_cache.exceptions import BrowserError


def make_history(final_result, done=True, successful=True, errors=None):
    history = MagicMock()
    history.is_done.return_value = done
    history.is_successful.return_value = successful
    history.errors.return_value = errors or []
    history.final_result.return_value = final_result
    return history


@pytest.fixture
def browser_page() -> BrowserPage:
    page = BrowserPage(llm=MagicMock(), browser_profile=MagicMock(), max_steps=4)
    page._session = MagicMock()
    return page


def patch_agent(history):
    agent = MagicMock()
    agent.run = AsyncMock(return_value=history)
    return patch("browser_use.Agent", return_value=agent)


class TestDescribeDirective:
    """Test rendering directives as agent tasks."""

    def test_text_passes_through(self):
        assert describe_directive("click login") == "click login"

    def test_observed_candidate(self):
        text = describe_directive({"description": "Search box", "method": "fill", "selector": "#q", "arguments": ["laptop"]})
        assert text == "Search box (use 'fill' on element `#q`) with arguments: laptop"

    def test_candidate_without_selector(self):
        assert describe_directive({"description": "Press enter", "method": "press"}) == "Press enter"


class TestAgentCalls:
    """Test perform, extract and observe over a stubbed Agent."""

    async def test_perform(self, browser_page):
        with patch_agent(make_history("clicked")) as agent_cls:
            outcome = await browser_page.perform("click login")

        assert outcome == {"success": True, "result": "clicked"}
        kwargs = agent_cls.call_args.kwargs
        assert "click login" in kwargs["task"]
        assert kwargs["max_steps"] == 4
        assert kwargs["browser_session"] is browser_page._session

    async def test_unfinished_agent_raises(self, browser_page):
        with patch_agent(make_history(None, done=False, errors=[None, "element not found"])):
            with pytest.raises(BrowserError, match="element not found"):
                await browser_page.perform("click login")

    async def test_extract_validates_shape(self, browser_page):
        shape = ShapeDescriptor.parse({"price": "number"})
        with patch_agent(make_history(json.dumps({"price": 12.5}))) as agent_cls:
            data = await browser_page.extract("get the price", shape)

        assert data == {"price": 12.5}
        assert agent_cls.call_args.kwargs["output_model_schema"] is not None

    async def test_extract_empty_result(self, browser_page):
        with patch_agent(make_history(None)):
            with pytest.raises(BrowserError):
                await browser_page.extract("get the price", ShapeDescriptor.parse({"price": "number"}))

    async def test_observe(self, browser_page):
        final = json.dumps({"actions": [{"description": "Login", "method": "click", "selector": "#login"}]})
        with patch_agent(make_history(final)):
            observed = await browser_page.observe("click login")

        assert observed == [{"description": "Login", "method": "click", "selector": "#login", "arguments": []}]

    async def test_observe_nothing(self, browser_page):
        with patch_agent(make_history(json.dumps({"actions": []}))):
            assert await browser_page.observe("click login") == []


class TestSession:
    """Test session guards and CDP-backed URL reads."""

    async def test_session_required(self):
        page = BrowserPage(llm=MagicMock(), browser_profile=MagicMock())
        with pytest.raises(BrowserError, match="not started"):
            await page.perform("click login")

    async def test_current_url(self, browser_page):
        session = browser_page._session
        session.get_or_create_cdp_session = AsyncMock(return_value=MagicMock(session_id="s1"))
        session.cdp_client.send.Page.enable = AsyncMock()
        session.cdp_client.send.Runtime.enable = AsyncMock()
        session.cdp_client.send.Page.getFrameTree = AsyncMock(return_value={"frameTree": {"frame": {"url": "https://shop.example.com/"}}})

        assert await browser_page.current_url() == "https://shop.example.com/"
