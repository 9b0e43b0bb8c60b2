"""Playwright browser lifecycle for the scraper.

One BrowserController owns one browser, one context and one page for the
duration of a run:
- Optional stealth patches (automation flags hidden, navigator spoofed)
- Session restore through Playwright storage state
- Optional resource blocking (analytics, media)
- Modal overlay removal and debug artifacts (screenshot + HTML)
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Route,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from jobharvest.config import Config
from jobharvest.errors import BrowserLaunchError, BrowserNotStartedError, NavigationError
from jobharvest.utils.dates import utcnow

logger = structlog.get_logger(logger_name=__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class BrowserConfig:
    """Configuration for one browser session."""

    headless: bool = True
    stealth: bool = True
    browser_type: str = "chromium"
    navigation_timeout_ms: int = 30000
    action_delay_ms: int = 0
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    viewport: dict[str, int] = field(
        default_factory=lambda: {"width": 1920, "height": 1080}
    )
    locale: str = "en-US"
    block_resources: bool = False
    blocked_resource_types: tuple[str, ...] = ("media", "font")
    blocked_domains: tuple[str, ...] = (
        "google-analytics.com",
        "googletagmanager.com",
        "doubleclick.net",
        "ads.",
    )
    logs_dir: Path = Path("logs")

    @classmethod
    def from_config(cls, config: Config, headless: bool | None = None) -> "BrowserConfig":
        return cls(
            headless=config.headless if headless is None else headless,
            stealth=config.stealth,
            browser_type=config.browser_type,
            navigation_timeout_ms=config.navigation_timeout_ms,
            action_delay_ms=config.action_delay_ms,
            block_resources=config.block_resources,
            logs_dir=config.logs_dir,
        )


STEALTH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=Translate",
    "--lang=en-US",
]

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
Object.defineProperty(navigator, 'hardwareConcurrency', {get: () => 8});
window.chrome = window.chrome || { runtime: {} };
window.cr = window.cr || {};
window.cr.googleTranslate = { isAvailable: false, isActive: false };
"""

MODAL_OVERLAY_SELECTOR = ".modal__overlay"

REMOVE_MODAL_SCRIPT = """
() => {
    let removed = false;
    const overlay = document.querySelector('.modal__overlay');
    if (overlay) { overlay.remove(); removed = true; }
    const container = document.querySelector('.modal, .artdeco-modal, [role="dialog"]');
    if (container && container.querySelector('.modal__overlay')) {
        container.remove();
        removed = true;
    }
    const close = document.querySelector(
        '.modal__dismiss, .artdeco-modal__dismiss, [data-test-modal-close-btn]'
    );
    if (close instanceof HTMLElement) { close.click(); removed = true; }
    return removed;
}
"""

MAX_MODAL_REMOVALS = 10


async def _handle_route(route: Route, config: BrowserConfig) -> None:
    """Abort blocked resource types and tracker domains."""
    request = route.request

    if request.resource_type in config.blocked_resource_types:
        await route.abort()
        return

    url = request.url
    for blocked in config.blocked_domains:
        if blocked in url:
            await route.abort()
            return

    await route.continue_()


# =============================================================================
# Browser Controller
# =============================================================================


class BrowserController:
    """Owns the Playwright browser used by one scrape or login.

    Usage:
        async with BrowserController(config) as browser:
            await browser.navigate(url)
    """

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def is_started(self) -> bool:
        return self._page is not None

    async def launch(self, storage_state: dict[str, Any] | None = None) -> None:
        """Start the browser, optionally restoring a saved storage state.

        Raises:
            BrowserLaunchError: Playwright could not start the browser.
        """
        cfg = self.config
        logger.info(
            "Launching browser",
            browser_type=cfg.browser_type,
            headless=cfg.headless,
            restored_session=storage_state is not None,
        )
        try:
            self._playwright = await async_playwright().start()
            launcher = getattr(self._playwright, cfg.browser_type)
            launch_args = STEALTH_ARGS if cfg.stealth and cfg.browser_type == "chromium" else []
            self._browser = await launcher.launch(headless=cfg.headless, args=launch_args)

            self._context = await self._browser.new_context(
                user_agent=cfg.user_agent,
                viewport=cfg.viewport,
                locale=cfg.locale,
                storage_state=storage_state,
            )
            if cfg.stealth:
                await self._context.add_init_script(STEALTH_SCRIPT)
            if cfg.block_resources:
                await self._context.route("**/*", lambda route: _handle_route(route, cfg))

            self._page = await self._context.new_page()
            self._page.set_default_navigation_timeout(cfg.navigation_timeout_ms)
        except PlaywrightError as e:
            logger.error("Failed to launch browser", error=str(e))
            await self.close()
            raise BrowserLaunchError(f"Could not launch {cfg.browser_type}: {e}") from e

        logger.info("Browser launched")

    def get_page(self) -> Page:
        if self._page is None:
            raise BrowserNotStartedError("Browser not started. Call launch() first.")
        return self._page

    def get_context(self) -> BrowserContext:
        if self._context is None:
            raise BrowserNotStartedError("Browser not started. Call launch() first.")
        return self._context

    async def navigate(self, url: str) -> None:
        """Load a URL and dismiss any modal overlay.

        Raises:
            NavigationError: timeout, network failure or an error status.
        """
        page = self.get_page()
        logger.info("Navigating", url=url)
        try:
            response = await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

        if response is not None and response.status >= 400:
            raise NavigationError(f"Failed to load {url}: HTTP {response.status}")

        await self.remove_modal_overlay()

    async def click(self, selector: str, timeout_ms: int = 10000) -> None:
        if self.config.action_delay_ms:
            await asyncio.sleep(self.config.action_delay_ms / 1000)
        await self.get_page().click(selector, timeout=timeout_ms)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        """Wait for a selector; False on timeout."""
        try:
            await self.get_page().wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def content(self) -> str:
        return await self.get_page().content()

    async def remove_modal_overlay(self, timeout_ms: int = 2000) -> int:
        """Remove sign-up modals covering the page. Returns how many were removed."""
        page = self.get_page()
        try:
            await page.wait_for_selector(
                MODAL_OVERLAY_SELECTOR, timeout=timeout_ms, state="attached"
            )
        except PlaywrightTimeoutError:
            return 0

        removed = 0
        try:
            while removed < MAX_MODAL_REMOVALS:
                if not await page.evaluate(REMOVE_MODAL_SCRIPT):
                    break
                removed += 1
                await asyncio.sleep(0.3)
                if await page.query_selector(MODAL_OVERLAY_SELECTOR) is None:
                    break
        except PlaywrightError as e:
            logger.warning("Error while removing modal overlay", error=str(e))

        logger.debug("Modal overlays removed", count=removed)
        return removed

    async def save_debug_artifacts(self, prefix: str, **context) -> list[Path]:
        """Save a screenshot and the page HTML under the logs directory."""
        if self._page is None:
            return []
        logs_dir = Path(self.config.logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        stamp = utcnow().strftime("%Y%m%d-%H%M%S-%f")
        saved: list[Path] = []

        screenshot_path = logs_dir / f"{prefix}-screenshot-{stamp}.png"
        try:
            await self._page.screenshot(path=str(screenshot_path), full_page=True)
            saved.append(screenshot_path)
        except PlaywrightError as e:
            logger.debug("Could not save screenshot", error=str(e))

        html_path = logs_dir / f"{prefix}-page-{stamp}.html"
        try:
            html = await self._page.content()
            html_path.write_text(html, encoding="utf-8")
            saved.append(html_path)
        except (PlaywrightError, OSError) as e:
            logger.debug("Could not save page HTML", error=str(e))

        if saved:
            logger.info("Debug artifacts saved", paths=[str(p) for p in saved], **context)
        return saved

    async def close(self) -> None:
        """Close page, context, browser and Playwright. Safe to call twice."""
        for name in ("_page", "_context", "_browser"):
            handle = getattr(self, name)
            if handle is None:
                continue
            try:
                await handle.close()
            except PlaywrightError as e:
                logger.warning("Error closing browser resource", resource=name, error=str(e))
            setattr(self, name, None)

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.warning("Error stopping Playwright", error=str(e))
            self._playwright = None
            logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserController":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
