"""Tests for single and multi-page scraping."""

from unittest.mock import AsyncMock, patch

import pytest

from mcp_server_action_cache.actions import ActionExecutor, ActionKind, ActionTeacher, CachedAction, PaginatedScraper
from mcp_server_action_cache.observability import RunRecord

PRICE_SHAPE = {"price": "number"}


@pytest.fixture
def scraper(page, action_store) -> PaginatedScraper:
    page.default_extract = {"price": 1}
    teacher = ActionTeacher(page, action_store, teach_cost=2)
    executor = ActionExecutor(page, action_store, teacher, learn_cost=2)
    return PaginatedScraper(page, executor, scrape_cost=3, max_pages=10, page_settle_seconds=0)


class TestScrape:
    """Test one-shot extraction."""

    async def test_extracts_and_charges(self, scraper, page, ledger):
        page.default_extract = {"price": 9.99}

        data = await scraper.scrape("get the price", PRICE_SHAPE, ledger=ledger)

        assert data == {"price": 9.99}
        assert ledger.cache_misses == 1
        assert ledger.cost == 3

    async def test_errors_propagate(self, scraper, page, ledger):
        page.extract_results = [RuntimeError("timeout")]
        with pytest.raises(RuntimeError):
            await scraper.scrape("get the price", PRICE_SHAPE, ledger=ledger)


class TestScrapeMultiple:
    """Test the bounded pagination loop."""

    async def test_max_pages_bounds_extractions_and_page_turns(self, scraper, page, ledger):
        results = await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=3)

        assert len(results) == 3
        assert len(page.extractions) == 3
        assert page.performed == ["click next page button", "click next page button"]

    async def test_next_page_failure_ends_loop(self, scraper, page, ledger):
        page.perform_failures = [None, RuntimeError("no next button")]
        page.extract_results = [{"price": 1}, {"price": 2}]

        results = await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=3)

        assert results == [{"price": 1.0}, {"price": 2.0}]

    async def test_first_page_turn_failure_keeps_first_record(self, scraper, page, ledger):
        page.perform_failures = [RuntimeError("no next button")]

        results = await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=5)

        assert len(results) == 1
        assert len(page.extractions) == 1

    async def test_extraction_error_returns_collected_records(self, scraper, page, ledger):
        page.extract_results = [{"price": 1}, RuntimeError("page crashed")]

        results = await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=5)

        assert results == [{"price": 1.0}]

    async def test_first_page_error_returns_empty(self, scraper, page, ledger):
        page.extract_results = [RuntimeError("page crashed")]
        assert await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger) == []

    async def test_stop_condition(self, scraper, page, ledger):
        results = await scraper.scrape_multiple(
            "list prices",
            PRICE_SHAPE,
            ledger=ledger,
            max_pages=10,
            stop_condition=lambda collected: len(collected) >= 2,
        )

        assert len(results) == 2
        assert len(page.performed) == 1

    async def test_zero_pages(self, scraper, page, ledger):
        assert await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=0) == []
        assert page.extractions == []

    async def test_default_max_pages(self, scraper, page, ledger):
        scraper.max_pages = 2
        assert len(await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger)) == 2

    async def test_custom_next_page_action_uses_cache(self, scraper, page, action_store, ledger):
        await action_store.save_cached_action(
            CachedAction(
                name="next_page",
                website="shop.example.com",
                kind=ActionKind.ACT,
                instruction="click next",
                payload={"description": "Next", "method": "click", "selector": "a.next"},
            )
        )

        await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=2, next_page_action="next_page")

        assert page.performed[0]["selector"] == "a.next"
        assert ledger.cache_hits == 1

    async def test_waits_for_page_to_settle(self, scraper, ledger):
        scraper.page_settle_seconds = 2.0
        with patch("mcp_server_action_cache.actions.scraper.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await scraper.scrape_multiple("list prices", PRICE_SHAPE, ledger=ledger, max_pages=2)
        sleep.assert_awaited_once_with(2.0)


class TestScrapeAndSave:
    """Test merging scraped data into a run."""

    async def test_merges_under_save_name(self, scraper, page, run_store, ledger):
        await run_store.create_run(RunRecord(run_id="run-1", instruction="x", result={"success": True}))
        page.default_extract = {"price": 4}

        data, saved = await scraper.scrape_and_save(run_store, "run-1", "get the price", PRICE_SHAPE, "prices", ledger=ledger)
        await scraper.scrape_and_save(run_store, "run-1", "get the price", PRICE_SHAPE, ledger=ledger)

        assert saved
        assert data == {"price": 4.0}
        run = await run_store.get_run("run-1")
        assert run.result["success"] is True
        assert run.result["scrapedData"] == {"prices": {"price": 4.0}, "data": {"price": 4.0}}

    async def test_missing_run_is_not_saved(self, scraper, run_store, ledger):
        data, saved = await scraper.scrape_and_save(run_store, "nope", "get the price", PRICE_SHAPE, ledger=ledger)
        assert data == {"price": 1.0}
        assert saved is False
