"""Custom exceptions for the action-cache engine."""


class ActionCacheError(Exception):
    """Base exception for action-cache errors."""

    pass


class LLMProviderError(ActionCacheError):
    """Raised when LLM provider configuration is invalid."""

    pass


class BrowserError(ActionCacheError):
    """Raised when browser operations fail."""

    pass


class ShapeError(ActionCacheError, ValueError):
    """Raised when a shape descriptor is malformed."""

    pass


class RunNotFound(ActionCacheError):
    """Raised when a run id does not exist in the run store."""

    pass


class NoObservation(ActionCacheError):
    """Raised when observing an instruction yields no candidate actions."""

    pass


class MissingShape(ActionCacheError):
    """Raised when an extract action is taught without a shape descriptor."""

    def __init__(self, message: str = "MissingShape: shape descriptor required for extract actions"):
        super().__init__(message)


class ReplayFailure(ActionCacheError):
    """Raised when replaying a cached action fails (recovered by re-teaching)."""

    pass


class LearnFailure(ActionCacheError):
    """Raised when performing a fresh instruction fails, or a replay still fails after re-teaching."""

    pass


class PlanParseFailure(ActionCacheError):
    """Raised when the planner response holds no parseable step array."""

    pass


class PageTerminated(ActionCacheError):
    """Signals the end of pagination. Never surfaced as a failure."""

    pass
