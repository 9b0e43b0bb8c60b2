"""Detection of the LinkedIn login state."""

import asyncio
import time
from typing import Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from jobharvest.errors import LoginTimeoutError

logger = structlog.get_logger(logger_name=__name__)

LOGIN_URL = "https://www.linkedin.com/login"
FEED_URL = "https://www.linkedin.com/feed/"
AUTH_COOKIE = "li_at"

AUTH_WALL_PATHS = ("/authwall", "/login", "/checkpoint", "/uas/login")
SIGN_IN_FORM_SELECTOR = ".sign-in-form, form.login__form, .authwall-join-form"
PROFILE_NAV_SELECTOR = ".global-nav__me"

PROGRESS_EVERY_S = 30


class LoginDetector:
    """Answers "is this browser logged in?" and waits for a manual login."""

    def __init__(
        self,
        navigation_timeout_ms: int = 10000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.navigation_timeout_ms = navigation_timeout_ms
        self._sleep = sleep
        self._clock = clock

    async def has_auth_cookie(self, page: Page) -> bool:
        cookies = await page.context.cookies()
        return any(c.get("name") == AUTH_COOKIE and c.get("value") for c in cookies)

    async def is_logged_in(self, page: Page) -> bool:
        """Auth cookie present and the feed shows the profile menu."""
        try:
            if not await self.has_auth_cookie(page):
                logger.debug("No auth cookie found")
                return False

            await page.goto(
                FEED_URL,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout_ms,
            )
            profile_nav = await page.query_selector(PROFILE_NAV_SELECTOR)
            sign_in_form = await page.query_selector(SIGN_IN_FORM_SELECTOR)
            return profile_nav is not None and sign_in_form is None
        except PlaywrightError as e:
            logger.warning("Failed to detect login status", error=str(e))
            return False

    async def is_auth_wall(self, page: Page) -> bool:
        """True when the current page asks the visitor to sign in."""
        url = page.url or ""
        if any(path in url for path in AUTH_WALL_PATHS):
            return True
        try:
            return await page.query_selector(SIGN_IN_FORM_SELECTOR) is not None
        except PlaywrightError:
            return False

    async def navigate_to_login(self, page: Page) -> None:
        await page.goto(LOGIN_URL, wait_until="domcontentloaded", timeout=30000)
        logger.info("Navigated to LinkedIn login page")

    async def wait_for_login(
        self,
        page: Page,
        timeout_ms: int = 300000,
        poll_interval_ms: int = 2000,
    ) -> None:
        """Poll until the user completes the login in the visible browser.

        Raises:
            LoginTimeoutError: the login did not complete within ``timeout_ms``.
        """
        logger.info("Waiting for user to complete login", timeout_ms=timeout_ms)
        started = self._clock()
        deadline = started + timeout_ms / 1000
        next_progress = started + PROGRESS_EVERY_S

        while self._clock() < deadline:
            if await self.is_logged_in(page):
                logger.info("Login successful")
                return

            now = self._clock()
            if now >= next_progress:
                logger.info("Still waiting for login", elapsed_s=int(now - started))
                next_progress += PROGRESS_EVERY_S

            await self._sleep(poll_interval_ms / 1000)

        raise LoginTimeoutError(
            f"Login was not completed within {timeout_ms // 1000} seconds"
        )
