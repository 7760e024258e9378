"""Data models for cached actions and workflow execution.

Cached actions are MACHINE-LEARNED from natural-language instructions on a
live page, not manually authored. Every action is scoped to the website it
was learned on, and all lookups go through the composite CacheKey so two
sites can hold independently learned actions with the same name.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urlparse


class ActionKind(str, Enum):
    """What a cached action does when replayed."""

    ACT = "act"
    EXTRACT = "extract"


# --- Cache identity ---


@dataclass(frozen=True)
class CacheKey:
    """Lookup identity of a cached action: the (website, name) pair."""

    website: str
    name: str

    def __str__(self) -> str:
        return f"{self.website}::{self.name}"


def resolve_cache_key(name: str, website: str) -> CacheKey:
    """Derive the cache key for an action name on a website."""
    return CacheKey(website=website.strip().lower(), name=name)


def website_from_url(url: str) -> str:
    """Return the hostname of a page URL.

    Raises:
        ValueError: If the URL has no hostname (e.g. about:blank)
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError(f"Cannot determine website from URL: {url!r}")
    return hostname.lower()


_TOKEN_RE = re.compile(r"\{([^{}]+)\}")


def substitute_params(template: str, params: dict[str, Any] | None) -> str:
    """Replace every {key} token with its value. Unknown tokens stay untouched."""
    if not params:
        return template
    return _TOKEN_RE.sub(lambda m: str(params[m.group(1)]) if m.group(1) in params else m.group(0), template)


# --- Cached action ---


@dataclass
class CachedAction:
    """A reusable, named, site-scoped recipe learned from an instruction."""

    name: str
    website: str
    kind: ActionKind
    instruction: str  # May contain {placeholder} tokens
    payload: dict[str, Any]
    shape: str | None = None  # Serialized ShapeDescriptor
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int | None = None

    @property
    def key(self) -> CacheKey:
        return resolve_cache_key(self.name, self.website)

    def validate(self) -> None:
        """Check storage invariants.

        Raises:
            ValueError: If a required field is missing
        """
        if not self.name or not self.name.strip():
            raise ValueError("CachedAction.name must be non-empty")
        if not self.website:
            raise ValueError("CachedAction.website must be non-empty")
        if not self.payload:
            raise ValueError("CachedAction.payload must be non-empty")
        if self.kind == ActionKind.EXTRACT and not self.shape:
            raise ValueError("CachedAction.shape is required for extract actions")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "website": self.website,
            "kind": self.kind.value,
            "instruction": self.instruction,
            "payload": self.payload,
            "shape": self.shape,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedAction":
        created_at = data.get("created_at")
        return cls(
            id=data.get("id"),
            name=data["name"],
            website=data["website"],
            kind=ActionKind(data.get("kind", "act")),
            instruction=data["instruction"],
            payload=data.get("payload") or {},
            shape=data.get("shape"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(UTC),
        )


@dataclass
class TeachRequest:
    """One entry of a batch teach."""

    name: str
    instruction: str
    kind: ActionKind = ActionKind.ACT
    shape: Any = None  # ShapeDescriptor, dict, or JSON text

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TeachRequest":
        return cls(
            name=data["name"],
            instruction=data["instruction"],
            kind=ActionKind(data.get("kind") or data.get("type") or "act"),
            shape=data.get("shape", data.get("schema")),
        )


@dataclass
class TeachResult:
    """Outcome of teaching one action. Teaching never raises."""

    success: bool
    action: CachedAction | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action.to_dict() if self.action else None,
            "error": self.error,
        }


# --- Workflow models ---


@dataclass
class WorkflowStep:
    """One step of a workflow: a cached action name or a raw instruction."""

    action_name: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowStep":
        """Build from planner output ({"actionName", "params"}) or snake_case keys."""
        name = data.get("actionName", data.get("action_name"))
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Workflow step needs a non-empty actionName: {data!r}")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError(f"Workflow step params must be an object: {data!r}")
        return cls(action_name=name, params=params)

    def to_dict(self) -> dict[str, Any]:
        return {"actionName": self.action_name, "params": self.params}


@dataclass
class RunLedger:
    """Per-run accumulator for cache counters, cost and the executed-step log.

    Passed explicitly through every executor, teacher and scraper call so
    concurrent runs never share counters.
    """

    cache_hits: int = 0
    cache_misses: int = 0
    cost: int = 0
    steps: list[str] = field(default_factory=list)

    def record_hit(self, step: str) -> None:
        self.cache_hits += 1
        self.steps.append(step)

    def record_miss(self, cost: int) -> None:
        self.cache_misses += 1
        self.cost += cost

    def record_step(self, step: str) -> None:
        self.steps.append(step)


@dataclass
class WorkflowResult:
    """Aggregate outcome of a workflow run."""

    success: bool
    steps: list[str] = field(default_factory=list)
    cache_hits: int = 0
    cache_misses: int = 0
    cost: int = 0
    steps_attempted: int = 0
    data: list[Any] | None = None
    error: str | None = None

    @classmethod
    def from_ledger(cls, ledger: RunLedger, *, success: bool, steps_attempted: int, data: list[Any] | None = None, error: str | None = None) -> "WorkflowResult":
        return cls(
            success=success,
            steps=list(ledger.steps),
            cache_hits=ledger.cache_hits,
            cache_misses=ledger.cache_misses,
            cost=ledger.cost,
            steps_attempted=steps_attempted,
            data=data,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "steps": self.steps,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "cost": self.cost,
            "stepsAttempted": self.steps_attempted,
        }
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result
