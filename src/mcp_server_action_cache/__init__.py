"""MCP server for browser automation with a site-scoped action cache."""

from .config import settings
from .exceptions import ActionCacheError, BrowserError, LearnFailure, LLMProviderError, PlanParseFailure
from .providers import get_llm
from .server import main, serve

__all__ = [
    "main",
    "serve",
    "settings",
    "get_llm",
    "ActionCacheError",
    "LLMProviderError",
    "BrowserError",
    "LearnFailure",
    "PlanParseFailure",
]
