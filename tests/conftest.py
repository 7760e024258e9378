"""Pytest configuration and fixtures for action-cache tests."""

from typing import Any

import pytest

from mcp_server_action_cache.actions import ActionStore, RunLedger, ShapeDescriptor
from mcp_server_action_cache.observability import RunStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring real API keys and browser")


class FakePage:
    """In-memory page with scripted outcomes.

    perform_failures and extract_results are consumed one entry per call.
    A None entry in perform_failures means that call succeeds; an exception
    in extract_results is raised instead of returned.
    """

    def __init__(self, url: str = "https://shop.example.com/products"):
        self.url = url
        self.started = False
        self.closed = False
        self.performed: list[Any] = []
        self.extractions: list[str] = []
        self.observations: list[str] = []
        self.perform_failures: list[Exception | None] = []
        self.extract_results: list[Any] = []
        self.default_extract: Any = {"title": "Widget"}
        self.observe_result: list[dict[str, Any]] = [
            {"description": "Click the search box", "method": "click", "selector": "#search", "arguments": []},
        ]

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def goto(self, url: str) -> None:
        self.url = url

    async def current_url(self) -> str:
        return self.url

    async def perform(self, directive):
        self.performed.append(directive)
        if self.perform_failures:
            failure = self.perform_failures.pop(0)
            if failure is not None:
                raise failure
        return {"success": True, "result": "done"}

    async def extract(self, directive: str, shape: ShapeDescriptor):
        self.extractions.append(directive)
        value = self.extract_results.pop(0) if self.extract_results else self.default_extract
        if isinstance(value, Exception):
            raise value
        return shape.validate(value)

    async def observe(self, directive: str):
        self.observations.append(directive)
        return list(self.observe_result)


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def ledger() -> RunLedger:
    return RunLedger()


@pytest.fixture
def action_store(tmp_path) -> ActionStore:
    return ActionStore(db_path=tmp_path / "actions.db")


@pytest.fixture
def run_store(tmp_path) -> RunStore:
    return RunStore(db_path=tmp_path / "runs.db")
