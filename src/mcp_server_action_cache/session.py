"""Automation sessions: one page, one run, all engine components wired together."""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from .actions import (
    ActionExecutor,
    ActionStore,
    ActionTeacher,
    InstructionPlanner,
    PaginatedScraper,
    RunLedger,
    ShapeDescriptor,
    TeachRequest,
    TeachResult,
    WorkflowResult,
    WorkflowRunner,
    website_from_url,
)
from .actions.page import BrowserPage, PageCapabilities, get_browser_profile
from .actions.planner import CompletionFn
from .config import CacheSettings, settings
from .exceptions import RunNotFound
from .observability import RunJournal, RunRecord, RunStatus, RunStore, bind_run_context, clear_run_context, get_run_logger
from .observability.store import utcnow

logger = logging.getLogger(__name__)


class AutomationSession:
    """Owns the page of one run and the components that act on it.

    Counters live in RunLedger values, so a session can serve several
    workflows without state leaking between them.
    """

    def __init__(
        self,
        page: PageCapabilities,
        complete: CompletionFn,
        action_store: ActionStore,
        run_store: RunStore | None = None,
        run_id: str | None = None,
        cache_settings: CacheSettings | None = None,
    ):
        cache = cache_settings or settings.cache
        self.page = page
        self.run_id = run_id
        self.run_store = run_store
        self.action_store = action_store
        self.journal = RunJournal(run_store, run_id)

        self.teacher = ActionTeacher(page, action_store, self.journal, teach_cost=cache.teach_cost)
        self.executor = ActionExecutor(
            page,
            action_store,
            self.teacher,
            self.journal,
            learn_cost=cache.learn_cost,
            replay_retries=cache.replay_retries,
        )
        self.planner = InstructionPlanner(page, action_store, complete, self.journal)
        self.scraper = PaginatedScraper(
            page,
            self.executor,
            self.journal,
            scrape_cost=cache.scrape_cost,
            max_pages=cache.max_pages,
            next_page_action=cache.next_page_action,
            page_settle_seconds=cache.page_settle_seconds,
        )
        self.runner = WorkflowRunner(self.executor, self.planner, self.journal)

    @classmethod
    def with_browser(cls, run_store: RunStore, action_store: ActionStore, run_id: str | None = None) -> "AutomationSession":
        """Build a session backed by a real browser and the configured LLM."""
        from .providers import get_configured_llm, llm_completion

        llm = get_configured_llm()
        page = BrowserPage(llm, get_browser_profile(), max_steps=settings.browser.max_steps)
        return cls(page, llm_completion(llm), action_store, run_store, run_id)

    async def start(self, url: str | None = None) -> None:
        await self.journal.log("🚀 Initializing automation session...")
        start = getattr(self.page, "start", None)
        if start is not None:
            await start()
        if url:
            await self.goto(url)
        await self.journal.log("✅ Session initialized")

    async def goto(self, url: str) -> None:
        await self.journal.log(f"🌐 Navigating to {url}...")
        goto = getattr(self.page, "goto", None)
        if goto is not None:
            await goto(url)
        else:
            await self.page.perform(f"navigate to {url}")
        await self.journal.log(f"✅ Loaded: {website_from_url(url)}")

    async def close(self) -> None:
        await self.journal.log("👋 Closing automation session...")
        close = getattr(self.page, "close", None)
        if close is not None:
            await close()

    async def prompt(self, instruction: str) -> WorkflowResult:
        return await self.runner.prompt(instruction)

    async def teach(self, name: str, instruction: str, kind: str = "act", shape: Any = None, ledger: RunLedger | None = None) -> TeachResult:
        return await self.teacher.teach(name, instruction, kind, shape, ledger=ledger or RunLedger())

    async def teach_batch(self, entries: list[TeachRequest | dict[str, Any]], ledger: RunLedger | None = None) -> list[TeachResult]:
        return await self.teacher.teach_batch(entries, ledger=ledger or RunLedger())

    async def scrape_multiple(self, instruction: str, shape: Any, ledger: RunLedger | None = None, **options: Any) -> list[Any]:
        return await self.scraper.scrape_multiple(instruction, shape, ledger=ledger or RunLedger(), **options)


SessionFactory = Callable[[RunStore, ActionStore, str], AutomationSession]


def _default_factory(run_store: RunStore, action_store: ActionStore, run_id: str) -> AutomationSession:
    return AutomationSession.with_browser(run_store, action_store, run_id)


async def _start_run(run_store: RunStore, instruction: str, url: str | None) -> RunRecord:
    run = RunRecord(
        run_id=str(uuid.uuid4()),
        instruction=instruction,
        url=url,
        status=RunStatus.RUNNING,
        started_at=utcnow(),
    )
    return await run_store.create_run(run)


async def _fail_run(run_store: RunStore, run_id: str, error: Exception) -> RunRecord:
    await run_store.append_log(run_id, f"❌ Fatal Error: {error}")
    return await run_store.update_run(
        run_id,
        status=RunStatus.FAILED,
        result={"error": str(error)},
        completed_at=utcnow(),
    )


async def run_automation(
    instruction: str,
    url: str | None = None,
    *,
    run_store: RunStore,
    action_store: ActionStore,
    session_factory: SessionFactory = _default_factory,
) -> RunRecord:
    """Create a run, plan and execute the instruction, and record the outcome.

    Never raises for automation errors: the run is marked failed instead.
    """
    run = await _start_run(run_store, instruction, url)
    bind_run_context(run.run_id, "prompt")
    run_logger = get_run_logger()
    run_logger.info("run_started", instruction_preview=instruction[:100])

    session: AutomationSession | None = None
    try:
        session = session_factory(run_store, action_store, run.run_id)
        await session.start(url)
        result = await session.prompt(instruction)
        run = await run_store.update_run(
            run.run_id,
            status=RunStatus.COMPLETED if result.success else RunStatus.FAILED,
            result=result.to_dict(),
            cost=result.cost,
            completed_at=utcnow(),
        )
        run_logger.info("run_finished", success=result.success, cache_hits=result.cache_hits, cache_misses=result.cache_misses)
    except Exception as e:
        logger.error(f"Run {run.run_id} failed: {e}")
        run_logger.error("run_failed", error=str(e))
        run = await _fail_run(run_store, run.run_id, e)
    finally:
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Session close failed: {e}")
        clear_run_context()
    return run


async def teach_on_site(
    url: str,
    entries: list[TeachRequest | dict[str, Any]],
    *,
    run_store: RunStore,
    action_store: ActionStore,
    session_factory: SessionFactory = _default_factory,
) -> tuple[RunRecord, list[TeachResult]]:
    """Open a site and teach a batch of actions, tracked as a run.

    Raises:
        ValueError: If entries is empty
    """
    if not entries:
        raise ValueError("No actions to teach")
    if len(entries) == 1:
        first = entries[0]
        label = f"Teaching action: {first.get('name') if isinstance(first, dict) else first.name}"
    else:
        label = f"Teaching {len(entries)} actions"
    run = await _start_run(run_store, label, url)
    bind_run_context(run.run_id, "teach")

    session: AutomationSession | None = None
    try:
        session = session_factory(run_store, action_store, run.run_id)
        await session.start(url)
        ledger = RunLedger()
        results = await session.teach_batch(entries, ledger=ledger)
        run = await run_store.update_run(
            run.run_id,
            status=RunStatus.COMPLETED,
            result={"taught": [r.to_dict() for r in results]},
            cost=ledger.cost,
            completed_at=utcnow(),
        )
        return run, results
    except Exception as e:
        logger.error(f"Teaching run {run.run_id} failed: {e}")
        run = await _fail_run(run_store, run.run_id, e)
        return run, [TeachResult(success=False, error=str(e)) for _ in entries]
    finally:
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Session close failed: {e}")
        clear_run_context()


async def scrape_into_run(
    run_id: str,
    instruction: str,
    shape: ShapeDescriptor | dict[str, Any] | str,
    save_name: str | None = None,
    *,
    run_store: RunStore,
    action_store: ActionStore,
    session_factory: SessionFactory = _default_factory,
) -> tuple[Any, bool]:
    """Extract once from an existing run's page and merge the data into its result.

    Raises:
        RunNotFound: If the run does not exist
    """
    run = await run_store.get_run(run_id)
    if run is None:
        raise RunNotFound(f"Run '{run_id}' not found")

    descriptor = ShapeDescriptor.parse(shape)
    bind_run_context(run_id, "scrape")
    session = session_factory(run_store, action_store, run_id)
    try:
        await session.start(run.url)
        ledger = RunLedger()
        return await session.scraper.scrape_and_save(run_store, run_id, instruction, descriptor, save_name, ledger=ledger)
    finally:
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"Session close failed: {e}")
        clear_run_context()
