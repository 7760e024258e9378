"""Page capabilities: the primitives the engine uses to act on a live page.

The engine only depends on the ``PageCapabilities`` protocol. ``BrowserPage``
implements it on top of a browser-use ``BrowserSession``:

- navigation and URL reads use session-scoped CDP commands (``session_id``)
  to bypass browser-use's watchdog system; the Page and Runtime domains must
  be enabled on the CDP session before use
- perform / extract / observe run short browser-use ``Agent`` tasks that
  share the session, with structured output for extract and observe
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, Field

from ..exceptions import BrowserError
from .shapes import ShapeDescriptor

if TYPE_CHECKING:
    from browser_use import BrowserProfile
    from browser_use.browser.session import BrowserSession, CDPSession
    from browser_use.llm.base import BaseChatModel

logger = logging.getLogger(__name__)


class PageCapabilities(Protocol):
    """Opaque page primitives consumed by the executor, teacher and scraper."""

    async def current_url(self) -> str: ...

    async def perform(self, directive: str | dict[str, Any]) -> Any: ...

    async def extract(self, directive: str, shape: ShapeDescriptor) -> Any: ...

    async def observe(self, directive: str) -> list[dict[str, Any]]: ...


class ObservedAction(BaseModel):
    """A candidate action found on the page for an instruction."""

    description: str = Field(description="What the action does, in one sentence")
    method: str = Field(description="Interaction method, e.g. click, fill, select, press")
    selector: str = Field(default="", description="CSS or XPath selector of the target element")
    arguments: list[str] = Field(default_factory=list, description="Arguments for the method, e.g. text to type")


class ObservedActions(BaseModel):
    actions: list[ObservedAction]


OBSERVE_TASK = """Look at the current page and identify the element interaction(s) that would accomplish:
"{directive}"

Do NOT perform any action and do NOT navigate away. Only inspect the page.
Return the candidate actions, best match first. Return an empty list if nothing on the page fits."""

PERFORM_TASK = """On the current page, perform exactly this action and then stop:
{directive}

Do not navigate to other sites. Report done as soon as the action is complete."""

EXTRACT_TASK = """Extract the following from the current page without navigating away:
{directive}

Return the data in the requested structured format."""


def describe_directive(directive: str | dict[str, Any]) -> str:
    """Render a raw instruction or an observed candidate as agent task text."""
    if isinstance(directive, str):
        return directive
    description = directive.get("description") or json.dumps(directive, default=str)
    method = directive.get("method")
    selector = directive.get("selector")
    arguments = directive.get("arguments") or []
    parts = [description]
    if method and selector:
        parts.append(f"(use '{method}' on element `{selector}`)")
    if arguments:
        parts.append(f"with arguments: {', '.join(str(a) for a in arguments)}")
    return " ".join(parts)


class BrowserPage:
    """PageCapabilities backed by a browser-use session and LLM."""

    def __init__(
        self,
        llm: "BaseChatModel",
        browser_profile: "BrowserProfile",
        max_steps: int = 8,
    ):
        self.llm = llm
        self.browser_profile = browser_profile
        self.max_steps = max_steps
        self._session: "BrowserSession | None" = None
        self._cdp_session: "CDPSession | None" = None

    async def start(self) -> None:
        """Launch the browser session."""
        from browser_use.browser.session import BrowserSession

        if self._session is not None:
            return
        self._session = BrowserSession(browser_profile=self.browser_profile)
        await self._session.start()
        logger.info("Browser session started")

    async def close(self) -> None:
        """Stop the browser session."""
        if self._session is None:
            return
        try:
            await self._session.stop()
        finally:
            self._session = None
            self._cdp_session = None

    @property
    def session(self) -> "BrowserSession":
        if self._session is None:
            raise BrowserError("Browser session not started")
        return self._session

    async def _get_cdp_session(self) -> "CDPSession":
        """Get or create a CDP session with Page and Runtime domains enabled."""
        session = self.session
        cdp_session = await session.get_or_create_cdp_session()
        if self._cdp_session is not None and self._cdp_session.session_id == cdp_session.session_id:
            return cdp_session

        try:
            await session.cdp_client.send.Page.enable(session_id=cdp_session.session_id)
        except Exception as e:
            # May already be enabled by session manager
            logger.debug(f"Page.enable: {e}")
        try:
            await session.cdp_client.send.Runtime.enable(session_id=cdp_session.session_id)
        except Exception as e:
            logger.debug(f"Runtime.enable: {e}")

        self._cdp_session = cdp_session
        return cdp_session

    async def goto(self, url: str, settle_seconds: float = 1.0) -> None:
        """Navigate the current tab to a URL."""
        cdp_session = await self._get_cdp_session()
        nav_result = await self.session.cdp_client.send.Page.navigate(
            params={"url": url, "transitionType": "address_bar"},
            session_id=cdp_session.session_id,
        )
        if nav_result.get("errorText"):
            raise BrowserError(f"Navigation failed: {nav_result['errorText']}")
        await asyncio.sleep(settle_seconds)

    async def current_url(self) -> str:
        """Get the current page URL from the frame tree."""
        cdp_session = await self._get_cdp_session()
        result = await self.session.cdp_client.send.Page.getFrameTree(session_id=cdp_session.session_id)
        url = result.get("frameTree", {}).get("frame", {}).get("url")
        if not url:
            raise BrowserError("Could not read the current page URL")
        return url

    async def _run_agent(self, task: str, output_model: type[BaseModel] | None = None) -> Any:
        from browser_use import Agent

        kwargs: dict[str, Any] = {}
        if output_model is not None:
            kwargs["output_model_schema"] = output_model

        agent = Agent(
            task=task,
            llm=self.llm,
            browser_session=self.session,
            max_steps=self.max_steps,
            **kwargs,
        )
        history = await agent.run()
        if not history.is_done() or history.is_successful() is False:
            errors = [e for e in history.errors() if e]
            raise BrowserError(f"Agent did not complete the task: {errors[-1] if errors else 'no result'}")
        return history.final_result()

    async def perform(self, directive: str | dict[str, Any]) -> Any:
        """Perform a raw instruction or replay an observed candidate action."""
        final = await self._run_agent(PERFORM_TASK.format(directive=describe_directive(directive)))
        return {"success": True, "result": final}

    async def extract(self, directive: str, shape: ShapeDescriptor) -> Any:
        """Extract structured data matching the shape."""
        final = await self._run_agent(EXTRACT_TASK.format(directive=directive), shape.to_model())
        if not final:
            raise BrowserError("Extraction returned no data")
        return shape.validate(final)

    async def observe(self, directive: str) -> list[dict[str, Any]]:
        """Find candidate actions for an instruction without performing them."""
        final = await self._run_agent(OBSERVE_TASK.format(directive=directive), ObservedActions)
        if not final:
            return []
        observed = ObservedActions.model_validate_json(final)
        return [action.model_dump() for action in observed.actions]


def get_browser_profile() -> "BrowserProfile":
    """Build the browser profile from settings."""
    from browser_use import BrowserProfile
    from browser_use.browser.profile import ProxySettings

    from ..config import settings

    proxy = None
    if settings.browser.proxy_server:
        proxy = ProxySettings(server=settings.browser.proxy_server, bypass=settings.browser.proxy_bypass)
    return BrowserProfile(headless=settings.browser.headless, proxy=proxy)
