"""Paginated scraping: bounded extraction plus next-page loops."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..exceptions import PageTerminated
from ..observability.journal import RunJournal
from ..observability.store import RunStore
from .executor import ActionExecutor
from .models import RunLedger
from .page import PageCapabilities
from .shapes import ShapeDescriptor

logger = logging.getLogger(__name__)

StopCondition = Callable[[list[Any]], bool]


class PaginatedScraper:
    """Extracts data page by page, turning pages through the executor."""

    def __init__(
        self,
        page: PageCapabilities,
        executor: ActionExecutor,
        journal: RunJournal | None = None,
        scrape_cost: int = 3,
        max_pages: int = 10,
        next_page_action: str = "click next page button",
        page_settle_seconds: float = 2.0,
    ):
        self.page = page
        self.executor = executor
        self.journal = journal or RunJournal()
        self.scrape_cost = scrape_cost
        self.max_pages = max_pages
        self.next_page_action = next_page_action
        self.page_settle_seconds = page_settle_seconds

    async def scrape(self, instruction: str, shape: ShapeDescriptor | dict[str, Any] | str, *, ledger: RunLedger) -> Any:
        """Run one extraction on the current page."""
        descriptor = ShapeDescriptor.parse(shape)
        await self.journal.log(f'🕷️ Scraping: "{instruction}"')
        ledger.record_miss(self.scrape_cost)

        data = await self.page.extract(instruction, descriptor)
        await self.journal.log("   ✅ Scraped data successfully")
        return data

    async def _next_page(self, action: str, ledger: RunLedger) -> None:
        try:
            await self.executor.execute(action, ledger=ledger)
        except Exception as e:
            raise PageTerminated(str(e)) from e
        if self.page_settle_seconds:
            await asyncio.sleep(self.page_settle_seconds)

    async def scrape_multiple(
        self,
        instruction: str,
        shape: ShapeDescriptor | dict[str, Any] | str,
        *,
        ledger: RunLedger,
        max_pages: int | None = None,
        next_page_action: str | None = None,
        stop_condition: StopCondition | None = None,
    ) -> list[Any]:
        """Extract one record per page, for at most max_pages pages.

        Stops when stop_condition(results) is true, when the next-page action
        fails, or when a page raises. Never raises; returns what was collected.
        """
        if max_pages is None:
            max_pages = self.max_pages
        action = next_page_action or self.next_page_action
        results: list[Any] = []

        await self.journal.log(f"🕷️ Multi-page scraping (max {max_pages} pages)...")

        for i in range(max_pages):
            try:
                data = await self.scrape(instruction, shape, ledger=ledger)
                results.append(data)
                await self.journal.log(f"   Page {i + 1}: ✅ Scraped")

                if stop_condition is not None and stop_condition(results):
                    await self.journal.log("   Stop condition met")
                    break

                if i < max_pages - 1:
                    await self._next_page(action, ledger)
            except PageTerminated:
                await self.journal.log("   No more pages available")
                break
            except Exception as e:
                logger.warning(f"Scraping stopped on page {i + 1}: {e}")
                await self.journal.log(f"   Error on page {i + 1}: {e}")
                break

        await self.journal.log(f"   ✅ Total pages scraped: {len(results)}")
        return results

    async def scrape_and_save(
        self,
        store: RunStore,
        run_id: str,
        instruction: str,
        shape: ShapeDescriptor | dict[str, Any] | str,
        save_name: str | None = None,
        *,
        ledger: RunLedger,
    ) -> tuple[Any, bool]:
        """Scrape once and merge the data into the run's result under scrapedData.

        Returns:
            (data, saved) where saved is False if the merge failed
        """
        data = await self.scrape(instruction, shape, ledger=ledger)

        try:
            run = await store.get_run(run_id)
            existing = dict(run.result or {}) if run else {}
            scraped = dict(existing.get("scrapedData") or {})
            scraped[save_name or "data"] = data
            existing["scrapedData"] = scraped
            await store.update_run(run_id, result=existing)
        except Exception as e:
            await self.journal.log(f"   ⚠️ Failed to save scraped data: {e}")
            return data, False

        await self.journal.log("   💾 Saved scraped data to run result")
        return data, True
