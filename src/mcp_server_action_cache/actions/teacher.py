"""Teaching: learning new actions and extraction patterns from instructions."""

import json
import logging
from typing import Any

from ..exceptions import MissingShape, NoObservation
from ..observability.journal import RunJournal
from .models import ActionKind, CachedAction, RunLedger, TeachRequest, TeachResult, website_from_url
from .page import PageCapabilities
from .shapes import ShapeDescriptor
from .store import ActionStore

logger = logging.getLogger(__name__)


class ActionTeacher:
    """Turns an instruction into a cached action on the current site.

    ``act`` actions are learned by observing the page and keeping the first
    candidate. ``extract`` actions run one extraction against a shape and keep
    the instruction, shape and sample result. Teaching never raises: every
    failure is logged and returned as a failed TeachResult.
    """

    def __init__(
        self,
        page: PageCapabilities,
        store: ActionStore,
        journal: RunJournal | None = None,
        teach_cost: int = 2,
    ):
        self.page = page
        self.store = store
        self.journal = journal or RunJournal()
        self.teach_cost = teach_cost

    async def teach(
        self,
        name: str,
        instruction: str,
        kind: ActionKind | str = ActionKind.ACT,
        shape: ShapeDescriptor | dict[str, Any] | str | None = None,
        *,
        ledger: RunLedger,
    ) -> TeachResult:
        """Learn one action and persist it under (name, current site).

        Args:
            name: Action name
            instruction: Natural-language directive, may contain {placeholder} tokens
            kind: act or extract
            shape: Shape descriptor, required for extract
            ledger: Run accumulator to charge

        Returns:
            TeachResult with the stored action, or the error
        """
        await self.journal.log(f'📚 Teaching action: "{name}"')
        await self.journal.log(f'   Instruction: "{instruction}"')

        try:
            kind = ActionKind(kind)
            website = website_from_url(await self.page.current_url())

            descriptor: ShapeDescriptor | None = None
            if kind == ActionKind.ACT:
                await self.journal.log("   Observing the page to learn the action...")
                observed = await self.page.observe(instruction)
                if not observed:
                    raise NoObservation(f"No actions observed for: {instruction}")
                payload = dict(observed[0])
                await self.journal.log(f"   ✅ Learned action: {json.dumps(payload, default=str)[:100]}...")
            else:
                if not shape:
                    raise MissingShape()
                descriptor = ShapeDescriptor.parse(shape)
                await self.journal.log("   Learning extraction pattern...")
                sample = await self.page.extract(instruction, descriptor)
                payload = {
                    "instruction": instruction,
                    "shape": descriptor.to_dict(),
                    "sample_result": sample,
                }
                await self.journal.log("   ✅ Learned extraction pattern")

            action = await self.store.save_cached_action(
                CachedAction(
                    name=name,
                    website=website,
                    kind=kind,
                    instruction=instruction,
                    payload=payload,
                    shape=descriptor.dumps() if descriptor else None,
                )
            )
            await self.journal.log(f'   💾 Cached action: "{name}" for {website}')
            ledger.record_miss(self.teach_cost)
            return TeachResult(success=True, action=action)

        except Exception as e:
            logger.warning(f"Teaching '{name}' failed: {e}")
            await self.journal.log(f"   ❌ Failed to teach action: {e}")
            return TeachResult(success=False, error=str(e))

    async def teach_batch(
        self,
        entries: list[TeachRequest | dict[str, Any]],
        *,
        ledger: RunLedger,
    ) -> list[TeachResult]:
        """Teach entries in order, one result per entry, continuing past failures."""
        await self.journal.log(f"📚 Teaching {len(entries)} actions...")
        results = []

        for entry in entries:
            try:
                request = entry if isinstance(entry, TeachRequest) else TeachRequest.from_dict(entry)
            except (KeyError, ValueError) as e:
                await self.journal.log(f"   ❌ Invalid teach entry: {e}")
                results.append(TeachResult(success=False, error=f"Invalid teach entry: {e}"))
                continue
            results.append(await self.teach(request.name, request.instruction, request.kind, request.shape, ledger=ledger))

        return results
