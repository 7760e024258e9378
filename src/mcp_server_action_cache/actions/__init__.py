"""Action cache subsystem: learning, replaying and composing site-scoped actions.

Cached actions are MACHINE-LEARNED from natural-language instructions:

1. TEACH: ActionTeacher observes the page (act) or runs a sample extraction
   (extract) and stores the result under the (website, name) cache key.

2. EXECUTE: ActionExecutor looks the name up for the current site.
   - Hit: the stored recipe is replayed with {placeholder} params filled in.
     A failing replay is re-taught once and retried.
   - Miss: the text is performed as a fresh instruction.

3. PLAN + RUN: InstructionPlanner asks the LLM to expand an instruction into
   steps, preferring cached names; WorkflowRunner executes them in order.

4. SCRAPE: PaginatedScraper extracts page after page, turning pages through
   the executor until a page limit, stop condition or last page.
"""

from .executor import ActionExecutor
from .models import (
    ActionKind,
    CachedAction,
    CacheKey,
    RunLedger,
    TeachRequest,
    TeachResult,
    WorkflowResult,
    WorkflowStep,
    resolve_cache_key,
    substitute_params,
    website_from_url,
)
from .page import BrowserPage, PageCapabilities
from .planner import InstructionPlanner
from .scraper import PaginatedScraper
from .shapes import ShapeDescriptor
from .store import ActionStore, get_action_store
from .teacher import ActionTeacher
from .workflow import WorkflowRunner

__all__ = [
    # Models
    "ActionKind",
    "CachedAction",
    "CacheKey",
    "RunLedger",
    "ShapeDescriptor",
    "TeachRequest",
    "TeachResult",
    "WorkflowResult",
    "WorkflowStep",
    "resolve_cache_key",
    "substitute_params",
    "website_from_url",
    # Components
    "ActionStore",
    "get_action_store",
    "ActionExecutor",
    "ActionTeacher",
    "InstructionPlanner",
    "PaginatedScraper",
    "WorkflowRunner",
    # Page
    "PageCapabilities",
    "BrowserPage",
]
