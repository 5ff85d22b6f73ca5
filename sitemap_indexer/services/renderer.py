"""Page rendering backends used by the page crawler.

The crawler only needs a small contract from a renderer: open a session,
set a User-Agent, visit a URL, then read the title and one attribute.
Two implementations are provided:

- ChromeRenderer: undetected headless Chrome, for JS-rendered or bot-guarded sites
- HttpRenderer: plain httpx + BeautifulSoup, for hosts without Chrome

Each session is used by exactly one crawler worker at a time.
"""

import asyncio
import os
import threading
from typing import Any, Callable, Protocol, TypeVar

import httpx
import logfire
from bs4 import BeautifulSoup

from sitemap_indexer.config import Settings
from sitemap_indexer.constants import WAIT_UNTIL_DOM_CONTENT_LOADED
from sitemap_indexer.exceptions import RenderError, RenderTimeoutError

T = TypeVar("T")

# Selenium page-load strategies by the document state they wait for
_PAGE_LOAD_STRATEGIES = {
    "domcontentloaded": "eager",
    "load": "normal",
}

# Browser flags for running headless inside containers
_CHROME_ARGUMENTS = (
    "--no-sandbox",
    "--disable-gpu",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)


class RenderSession(Protocol):
    """Protocol for a single browser tab (or equivalent)."""

    async def set_user_agent(self, user_agent: str) -> None:
        ...

    async def visit(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        """Navigate to url and wait for the given document state.

        Raises:
            RenderTimeoutError: If the state is not reached within timeout_ms
            RenderError: If navigation fails
        """
        ...

    async def get_title(self) -> str:
        ...

    async def extract(self, selector: str, attribute: str) -> str | None:
        """Return the attribute of the first element matching selector, if any."""
        ...

    async def close(self) -> None:
        ...


class Renderer(Protocol):
    """Protocol for a rendering backend that hands out sessions."""

    async def open(self) -> RenderSession:
        ...


# =============================================================================
# Headless Chrome
# =============================================================================


class ChromeRenderSession:
    """A headless Chrome driver wrapped in the async session contract.

    Selenium calls block, so they run in a worker thread. The lock keeps a
    navigation abandoned by a timeout from overlapping the next call.
    """

    def __init__(self, driver: Any, wait_until: str = WAIT_UNTIL_DOM_CONTENT_LOADED):
        self._driver = driver
        self._wait_until = wait_until
        self._lock = threading.Lock()

    async def _call(self, fn: Callable[[], T]) -> T:
        def locked() -> T:
            with self._lock:
                return fn()

        return await asyncio.to_thread(locked)

    async def set_user_agent(self, user_agent: str) -> None:
        await self._call(
            lambda: self._driver.execute_cdp_cmd(
                "Network.setUserAgentOverride", {"userAgent": user_agent}
            )
        )

    async def visit(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        from selenium.common.exceptions import TimeoutException, WebDriverException

        if wait_until != self._wait_until:
            raise RenderError(
                f"Session waits for {self._wait_until!r}, not {wait_until!r}"
            )

        def load() -> None:
            self._driver.set_page_load_timeout(timeout_ms / 1000)
            self._driver.get(url)

        try:
            await self._call(load)
        except TimeoutException as e:
            raise RenderTimeoutError(f"Timed out loading {url}") from e
        except WebDriverException as e:
            raise RenderError(f"Failed to load {url}: {e.msg or e}") from e

    async def get_title(self) -> str:
        return await self._call(lambda: self._driver.title or "")

    async def extract(self, selector: str, attribute: str) -> str | None:
        from selenium.webdriver.common.by import By

        def find() -> str | None:
            elements = self._driver.find_elements(By.CSS_SELECTOR, selector)
            return elements[0].get_attribute(attribute) if elements else None

        return await self._call(find)

    async def close(self) -> None:
        await self._call(self._driver.quit)


class ChromeRenderer:
    """Open sessions on undetected headless Chrome.

    Set CHROME_VERSION_MAIN to your Chrome major version (e.g. 143) if you see
    "This version of ChromeDriver only supports Chrome version X".
    """

    def __init__(self, wait_until: str = WAIT_UNTIL_DOM_CONTENT_LOADED):
        if wait_until not in _PAGE_LOAD_STRATEGIES:
            raise ValueError(f"Unsupported wait_until: {wait_until!r}")
        self._wait_until = wait_until
        # undetected_chromedriver patches one shared driver binary per launch
        self._launch_lock = asyncio.Lock()

    async def open(self) -> ChromeRenderSession:
        """Launch a Chrome session. Launches run one at a time."""
        async with self._launch_lock:
            driver = await asyncio.to_thread(self._launch_sync)
        logfire.debug("Chrome session opened", wait_until=self._wait_until)
        return ChromeRenderSession(driver, self._wait_until)

    def _launch_sync(self) -> Any:
        import undetected_chromedriver as uc

        options = uc.ChromeOptions()
        options.headless = True
        options.page_load_strategy = _PAGE_LOAD_STRATEGIES[self._wait_until]
        for argument in _CHROME_ARGUMENTS:
            options.add_argument(argument)
        kwargs: dict = {"options": options}
        version_main = os.environ.get("CHROME_VERSION_MAIN")
        if version_main is not None:
            try:
                kwargs["version_main"] = int(version_main)
            except ValueError:
                logfire.warn("Ignoring invalid CHROME_VERSION_MAIN", value=version_main)
        try:
            return uc.Chrome(**kwargs)
        except Exception as e:
            raise RenderError(f"Failed to launch Chrome: {e}") from e


# =============================================================================
# Plain HTTP
# =============================================================================


class HttpRenderSession:
    """Fetch raw HTML with httpx and query it with BeautifulSoup.

    No JavaScript runs, so the document is available as soon as the
    response body is, which satisfies any wait_until state.
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            follow_redirects=True, headers=self.DEFAULT_HEADERS.copy()
        )
        self._soup: BeautifulSoup | None = None

    async def set_user_agent(self, user_agent: str) -> None:
        self._client.headers["User-Agent"] = user_agent

    async def visit(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        self._soup = None
        try:
            response = await self._client.get(url, timeout=timeout_ms / 1000)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RenderTimeoutError(f"Timed out loading {url}") from e
        except httpx.HTTPError as e:
            raise RenderError(f"Failed to load {url}: {e}") from e
        self._soup = BeautifulSoup(response.text, "html.parser")

    def _document(self) -> BeautifulSoup:
        if self._soup is None:
            raise RenderError("No page loaded")
        return self._soup

    async def get_title(self) -> str:
        soup = self._document()
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return ""

    async def extract(self, selector: str, attribute: str) -> str | None:
        element = self._document().select_one(selector)
        if element is None:
            return None
        value = element.get(attribute)
        return value if isinstance(value, str) else None

    async def close(self) -> None:
        await self._client.aclose()


class HttpRenderer:
    """Open plain-HTTP sessions, each with its own connection pool."""

    async def open(self) -> HttpRenderSession:
        return HttpRenderSession()


def get_renderer(settings: Settings) -> Renderer:
    """Build the renderer selected by settings.renderer_backend."""
    if settings.renderer_backend == "http":
        return HttpRenderer()
    return ChromeRenderer()
