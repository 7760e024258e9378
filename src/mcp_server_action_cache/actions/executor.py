"""Action executor: cache replay with re-teach fallback, or fresh learning."""

import logging
from typing import Any

from ..exceptions import LearnFailure, ReplayFailure
from ..observability.journal import RunJournal
from .models import ActionKind, CachedAction, RunLedger, resolve_cache_key, substitute_params, website_from_url
from .page import PageCapabilities
from .shapes import ShapeDescriptor
from .store import ActionStore
from .teacher import ActionTeacher

logger = logging.getLogger(__name__)


def fill_payload(payload: dict[str, Any], params: dict[str, Any] | None) -> dict[str, Any]:
    """Substitute params into the string values of a learned act payload."""
    if not params:
        return payload

    def fill(value: Any) -> Any:
        if isinstance(value, str):
            return substitute_params(value, params)
        if isinstance(value, list):
            return [fill(v) for v in value]
        if isinstance(value, dict):
            return {k: fill(v) for k, v in value.items()}
        return value

    return fill(payload)


class ActionExecutor:
    """Executes a cached action by name, or a raw instruction on a cache miss.

    Cache hit: the stored recipe is replayed. If the replay raises, the
    action is treated as stale: it is re-taught once and the execute call is
    retried with one retry fewer. With no retries left the failure surfaces
    as LearnFailure.

    Cache miss: the argument is performed as a raw instruction. Failures
    surface as LearnFailure.
    """

    def __init__(
        self,
        page: PageCapabilities,
        store: ActionStore,
        teacher: ActionTeacher,
        journal: RunJournal | None = None,
        learn_cost: int = 2,
        replay_retries: int = 1,
    ):
        self.page = page
        self.store = store
        self.teacher = teacher
        self.journal = journal or RunJournal()
        self.learn_cost = learn_cost
        self.replay_retries = replay_retries

    async def execute(
        self,
        name_or_instruction: str,
        params: dict[str, Any] | None = None,
        *,
        ledger: RunLedger,
        shape: ShapeDescriptor | dict[str, Any] | str | None = None,
        retries: int | None = None,
    ) -> Any:
        """Execute a cached action by name, or perform the text as an instruction.

        Args:
            name_or_instruction: Cached action name or raw instruction
            params: Values for {placeholder} tokens
            ledger: Run accumulator
            shape: Inline shape overriding the stored one for extract actions
            retries: Re-teach attempts left after a replay failure (default from settings)

        Returns:
            Outcome of the dispatch

        Raises:
            LearnFailure: If a fresh instruction fails, or a replay fails with no retries left
        """
        if retries is None:
            retries = self.replay_retries

        website = website_from_url(await self.page.current_url())
        key = resolve_cache_key(name_or_instruction, website)
        cached = await self.store.get_cached_action(key)

        if cached is None:
            return await self._learn(name_or_instruction, params, ledger)

        await self.journal.log(f'⚡ Using cached action: "{name_or_instruction}"')
        try:
            return await self._replay(cached, params, shape, ledger)
        except ReplayFailure as e:
            if retries <= 0:
                await self.journal.log(f"   ❌ Cached action still failing after re-learning: {e}")
                raise LearnFailure(f'Cached action "{name_or_instruction}" failed after re-learning: {e.__cause__ or e}') from e

            await self.journal.log("   ⚠️ Cached action failed, re-learning...")
            result = await self.teacher.teach(
                cached.name,
                cached.instruction,
                cached.kind,
                cached.shape,
                ledger=ledger,
            )
            if not result.success:
                logger.warning(f"Re-teaching '{cached.name}' failed: {result.error}")
            return await self.execute(name_or_instruction, params, ledger=ledger, shape=shape, retries=retries - 1)

    async def _replay(
        self,
        cached: CachedAction,
        params: dict[str, Any] | None,
        shape: ShapeDescriptor | dict[str, Any] | str | None,
        ledger: RunLedger,
    ) -> Any:
        try:
            if cached.kind == ActionKind.ACT:
                await self.page.perform(fill_payload(cached.payload, params))
                outcome: Any = {"success": True}
                step = f"Executed: {cached.name}"
            else:
                instruction = substitute_params(cached.instruction, params)
                descriptor = ShapeDescriptor.parse(shape if shape is not None else cached.shape or "")
                outcome = await self.page.extract(instruction, descriptor)
                step = f"Extracted: {cached.name}"
        except Exception as e:
            raise ReplayFailure(f'Replay of "{cached.name}" failed: {e}') from e

        ledger.record_hit(step)
        await self.journal.log(f"   ✅ {step}")
        return outcome

    async def _learn(self, instruction_text: str, params: dict[str, Any] | None, ledger: RunLedger) -> Any:
        await self.journal.log(f'🤖 Learning new action: "{instruction_text}"')
        ledger.record_miss(self.learn_cost)

        instruction = substitute_params(instruction_text, params)
        try:
            outcome = await self.page.perform(instruction)
        except Exception as e:
            await self.journal.log(f"   ❌ Failed: {e}")
            raise LearnFailure(f'Could not perform "{instruction}": {e}') from e

        step = f"Executed: {instruction_text}"
        ledger.record_step(step)
        await self.journal.log(f"   ✅ {step}")
        return outcome
