from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright

from ..config import PortalSettings
from .errors import PortalStepError


logger = logging.getLogger(__name__)

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]


@dataclass
class PortalSession:
    """
    One live browser session (launch -> teardown), owned by exactly one run.

    Every portal operation receives this handle explicitly; `close()` is idempotent.
    """

    playwright: Playwright
    browser: Browser
    context: BrowserContext
    page: Page
    failure: Optional[PortalStepError] = None
    closed: bool = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for label, closer in (
            ("context", self.context.close),
            ("browser", self.browser.close),
            ("playwright", self.playwright.stop),
        ):
            try:
                closer()
            except Exception:
                logger.debug("Failed to close %s during teardown.", label, exc_info=True)
        logger.info("Browser session closed.")


def _launch_browser(p: Playwright, *, headless: bool, slow_mo: int) -> Browser:
    # Prefer Playwright's bundled Chromium, but fall back to a system-installed browser if the
    # container/cache doesn't have Playwright browsers available.
    try:
        return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=_LAUNCH_ARGS)
    except Exception as e:
        msg = str(e)
        if "Executable doesn't exist" not in msg:
            raise

        logger.warning(
            "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
            msg,
        )

        # Try Chrome first, then Edge.
        try:
            return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=_LAUNCH_ARGS, channel="chrome")
        except Exception:
            return p.chromium.launch(headless=headless, slow_mo=slow_mo, args=_LAUNCH_ARGS, channel="msedge")


def launch_session(settings: PortalSettings, *, headless: Optional[bool] = None) -> PortalSession:
    """
    Start Playwright + Chromium with the portal's context settings. Raises if the browser cannot start.
    """
    headless = settings.headless if headless is None else bool(headless)
    logger.info("Starting browser (headless=%s)", headless)

    p = sync_playwright().start()
    browser: Any = None
    try:
        browser = _launch_browser(p, headless=headless, slow_mo=int(settings.slow_mo_ms or 0))
        ctx = browser.new_context(
            viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            user_agent=settings.user_agent,
            locale=settings.locale,
            color_scheme="light",
        )
        # The portal asks for geolocation right after login; pre-grant it so no browser prompt blocks.
        ctx.grant_permissions(["geolocation"], origin=settings.origin)
        ctx.set_default_timeout(settings.default_timeout_ms)
        ctx.set_default_navigation_timeout(settings.default_timeout_ms)
        page = ctx.new_page()
    except Exception:
        if browser is not None:
            try:
                browser.close()
            except Exception:
                logger.debug("Failed to close browser after startup error.", exc_info=True)
        p.stop()
        raise

    return PortalSession(playwright=p, browser=browser, context=ctx, page=page)


@contextmanager
def open_session(
    settings: PortalSettings,
    *,
    headless: Optional[bool] = None,
    factory: Optional[Callable[..., PortalSession]] = None,
) -> Iterator[PortalSession]:
    """Scoped session: released exactly once however the block exits. `factory` defaults to launch_session."""
    session = (factory or launch_session)(settings, headless=headless)
    try:
        yield session
    finally:
        session.close()
