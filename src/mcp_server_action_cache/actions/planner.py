"""Instruction planner: expands free text into workflow steps with an LLM."""

import json
import logging
from collections.abc import Awaitable, Callable

from ..exceptions import PlanParseFailure
from ..observability.journal import RunJournal
from .models import WorkflowStep, website_from_url
from .page import PageCapabilities
from .prompts import get_planning_prompt
from .store import ActionStore

logger = logging.getLogger(__name__)

CompletionFn = Callable[[str], Awaitable[str]]


def find_json_array(text: str) -> list:
    """Return the first well-formed JSON array embedded in text.

    Raises:
        PlanParseFailure: If there is no '[' or no array decodes
    """
    decoder = json.JSONDecoder()
    start = text.find("[")
    if start == -1:
        raise PlanParseFailure("Failed to parse instruction: no step array in planner response")

    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return value
        start = text.find("[", start + 1)

    raise PlanParseFailure("Failed to parse instruction: step array is not valid JSON")


def parse_plan(text: str) -> list[WorkflowStep]:
    """Parse planner output into workflow steps."""
    items = find_json_array(text)
    steps = []
    for item in items:
        if not isinstance(item, dict):
            raise PlanParseFailure(f"Failed to parse instruction: step is not an object: {item!r}")
        try:
            steps.append(WorkflowStep.from_dict(item))
        except ValueError as e:
            raise PlanParseFailure(f"Failed to parse instruction: {e}") from e
    return steps


class InstructionPlanner:
    """Turns one instruction into steps, preferring actions cached for the current site."""

    def __init__(
        self,
        page: PageCapabilities,
        store: ActionStore,
        complete: CompletionFn,
        journal: RunJournal | None = None,
    ):
        self.page = page
        self.store = store
        self.complete = complete
        self.journal = journal or RunJournal()

    async def plan(self, instruction: str) -> list[WorkflowStep]:
        """Expand an instruction into ordered workflow steps.

        Raises:
            PlanParseFailure: If the completion holds no parseable step array
        """
        current_url = await self.page.current_url()
        website = website_from_url(current_url)
        available = await self.store.list_cached_actions(website)

        prompt = get_planning_prompt(instruction, website, current_url, available)
        response = await self.complete(prompt)

        try:
            steps = parse_plan(response)
        except PlanParseFailure:
            logger.warning(f"Unparseable plan response: {response[:200]}")
            raise

        await self.journal.log(f"   Parsed into {len(steps)} steps")
        return steps
