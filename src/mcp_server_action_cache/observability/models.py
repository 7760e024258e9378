"""Data models for automation runs."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Run execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunRecord(BaseModel):
    """One end-to-end automation session."""

    run_id: str
    instruction: str
    url: str | None = None
    status: RunStatus = RunStatus.PENDING

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    logs: list[str] = Field(default_factory=list)
    result: dict[str, Any] | None = None
    cost: int = 0  # cents

    @property
    def duration_seconds(self) -> float | None:
        """Calculate run duration in seconds."""
        if not self.started_at:
            return None
        end = self.completed_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    @property
    def is_terminal(self) -> bool:
        """Check if the run is in a terminal state."""
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    @property
    def scraped_data(self) -> Any:
        """Scraped data saved into the result, falling back to workflow data."""
        if not self.result:
            return None
        return self.result.get("scrapedData") or self.result.get("data")
