"""Workflow runner: sequential step execution with one aggregate result."""

import logging
from typing import Any

from ..observability.journal import RunJournal
from .executor import ActionExecutor
from .models import RunLedger, WorkflowResult, WorkflowStep
from .planner import InstructionPlanner

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Runs steps strictly in order through the executor.

    Each run starts from a fresh RunLedger. The first failing step aborts the
    rest and is reported in a failed WorkflowResult with everything
    accumulated so far.
    """

    def __init__(
        self,
        executor: ActionExecutor,
        planner: InstructionPlanner,
        journal: RunJournal | None = None,
    ):
        self.executor = executor
        self.planner = planner
        self.journal = journal or RunJournal()

    async def run(self, steps: list[WorkflowStep | dict[str, Any]]) -> WorkflowResult:
        """Execute steps in order and aggregate the outcome."""
        await self.journal.log(f"🎬 Executing workflow with {len(steps)} steps...")
        ledger = RunLedger()
        outcomes: list[Any] = []
        attempted = 0

        try:
            for raw_step in steps:
                step = raw_step if isinstance(raw_step, WorkflowStep) else WorkflowStep.from_dict(raw_step)
                attempted += 1
                outcomes.append(await self.executor.execute(step.action_name, step.params, ledger=ledger))
        except Exception as e:
            logger.warning(f"Workflow aborted at step {attempted}: {e}")
            await self.journal.log(f"❌ Workflow aborted at step {attempted}: {e}")
            return WorkflowResult.from_ledger(ledger, success=False, steps_attempted=attempted, error=str(e))

        await self.journal.log(f"✅ Workflow completed ({ledger.cache_hits} hits, {ledger.cache_misses} misses)")
        return WorkflowResult.from_ledger(ledger, success=True, steps_attempted=attempted, data=outcomes)

    async def prompt(self, instruction: str) -> WorkflowResult:
        """Plan an instruction into steps, then run them.

        Planning failures propagate unchanged.
        """
        await self.journal.log(f'💬 Processing prompt: "{instruction}"')
        try:
            steps = await self.planner.plan(instruction)
        except Exception as e:
            await self.journal.log(f"❌ Error parsing prompt: {e}")
            raise
        return await self.run(steps)
