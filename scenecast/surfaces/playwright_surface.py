"""Headless browser rendering surface backed by Playwright."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from playwright.sync_api import Browser, Error as PlaywrightError, Page, Playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from scenecast import logging_manager as log_mgr

from .base import FrameVariables, SurfaceError, SurfaceTimeoutError

logger = log_mgr.logger

_VARIABLES_TIMEOUT_MARKER = "scenecast:set-variables-timeout"

_SET_VARIABLES_SCRIPT = """
({vars, timeoutMs, marker}) => {
  const style = document.documentElement.style;
  style.setProperty('--progress', String(vars.progress));
  style.setProperty('--frame', String(vars.frame));
  style.setProperty('--total-frames', String(vars.totalFrames));
  const painted = new Promise((resolve) => requestAnimationFrame(() => resolve(true)));
  if (timeoutMs === null) {
    return painted;
  }
  const expired = new Promise((_, reject) => setTimeout(() => reject(new Error(marker)), timeoutMs));
  return Promise.race([painted, expired]);
}
"""

_SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")


@dataclass(slots=True)
class PlaywrightHandle:
    """Browser resources owned by one leased surface handle."""

    playwright: Playwright
    browser: Browser
    page: Page


def _milliseconds(timeout: Optional[float]) -> Optional[float]:
    return None if timeout is None else max(1.0, timeout * 1000.0)


class PlaywrightSurface:
    """Render markup in a headless browser page and screenshot it per frame.

    Each handle starts its own Playwright driver and browser, since the sync
    API binds objects to the thread that created them.
    """

    name = "playwright"

    def __init__(
        self,
        *,
        browser: str = "chromium",
        launch_args: Sequence[str] = (),
        device_scale_factor: float = 1.0,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        if browser not in _SUPPORTED_BROWSERS:
            raise ValueError(f"Unsupported browser '{browser}'")
        self._browser = browser
        self._launch_args = list(launch_args)
        self._device_scale_factor = device_scale_factor
        self._playwright_factory = playwright_factory

    def open(self) -> PlaywrightHandle:
        driver = self._playwright_factory().start()
        try:
            browser_type = getattr(driver, self._browser)
            browser = browser_type.launch(headless=True, args=self._launch_args)
            context = browser.new_context(device_scale_factor=self._device_scale_factor)
            page = context.new_page()
        except PlaywrightError as exc:
            driver.stop()
            raise SurfaceError(f"Failed to launch {self._browser}: {exc}") from exc
        logger.debug(
            "Opened rendering surface",
            extra={"event": "surface.playwright.open", "attributes": {"browser": self._browser}},
        )
        return PlaywrightHandle(playwright=driver, browser=browser, page=page)

    def load(
        self,
        handle: PlaywrightHandle,
        markup: str,
        *,
        width: int,
        height: int,
        timeout: Optional[float] = None,
    ) -> None:
        try:
            handle.page.set_viewport_size({"width": width, "height": height})
            handle.page.set_content(markup, wait_until="load", timeout=_milliseconds(timeout))
        except PlaywrightTimeoutError as exc:
            raise SurfaceTimeoutError(f"Markup did not load within {timeout}s") from exc
        except PlaywrightError as exc:
            raise SurfaceError(f"Markup failed to load: {exc}") from exc

    def set_variables(
        self,
        handle: PlaywrightHandle,
        variables: FrameVariables,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        payload = {
            "vars": dict(variables),
            "timeoutMs": _milliseconds(timeout),
            "marker": _VARIABLES_TIMEOUT_MARKER,
        }
        try:
            handle.page.evaluate(_SET_VARIABLES_SCRIPT, payload)
        except PlaywrightTimeoutError as exc:
            raise SurfaceTimeoutError("Setting frame variables timed out") from exc
        except PlaywrightError as exc:
            if _VARIABLES_TIMEOUT_MARKER in str(exc):
                raise SurfaceTimeoutError(f"Frame variables were not applied within {timeout}s") from exc
            raise SurfaceError(f"Setting frame variables failed: {exc}") from exc

    def capture_frame(self, handle: PlaywrightHandle, *, timeout: Optional[float] = None) -> bytes:
        try:
            return handle.page.screenshot(type="png", timeout=_milliseconds(timeout))
        except PlaywrightTimeoutError as exc:
            raise SurfaceTimeoutError(f"Frame capture exceeded {timeout}s") from exc
        except PlaywrightError as exc:
            raise SurfaceError(f"Frame capture failed: {exc}") from exc

    def close(self, handle: PlaywrightHandle) -> None:
        try:
            handle.browser.close()
        except PlaywrightError as exc:  # pragma: no cover
            logger.warning(
                "Browser did not close cleanly",
                extra={"event": "surface.playwright.close_failed", "attributes": {"error": str(exc)}},
            )
        finally:
            handle.playwright.stop()


__all__ = ["PlaywrightHandle", "PlaywrightSurface"]
