"""Headless Chromium render engine driven through Playwright."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from playwright.sync_api import Browser
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .errors import RenderFailure, RenderReason
from .rendering import PrintOptions

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
)


class ChromiumEngine:
    name = "chromium"

    def __init__(
        self,
        executable_path: Optional[str] = None,
        launch_args: Sequence[str] = CHROMIUM_ARGS,
    ) -> None:
        self.executable_path = executable_path
        self.launch_args = list(launch_args)

    @contextmanager
    def session(self, timeout_ms: int) -> Iterator[Browser]:
        """Yield a freshly launched browser that is closed on every exit path."""
        try:
            playwright = sync_playwright().start()
        except (PlaywrightError, OSError) as exc:
            raise RenderFailure(RenderReason.ENGINE_UNAVAILABLE, f"playwright driver failed to start: {exc}") from exc

        try:
            try:
                browser = playwright.chromium.launch(
                    headless=True,
                    executable_path=self.executable_path,
                    args=self.launch_args,
                    timeout=timeout_ms,
                )
            except PlaywrightError as exc:
                raise RenderFailure(RenderReason.ENGINE_UNAVAILABLE, f"chromium failed to launch: {exc}") from exc

            logger.debug("Chromium launched (%s)", self.executable_path or "bundled")
            try:
                yield browser
            finally:
                try:
                    browser.close()
                except PlaywrightError as exc:
                    logger.warning("Chromium did not close cleanly: %s", exc)
        finally:
            playwright.stop()

    def print_pdf(self, markup: str, options: PrintOptions) -> bytes:
        with self.session(options.timeout_ms) as browser:
            try:
                page = browser.new_page()
                page.set_content(markup, wait_until="networkidle", timeout=options.timeout_ms)
                return page.pdf(
                    format=options.page_format,
                    print_background=options.print_background,
                    margin=options.margins(),
                )
            except PlaywrightTimeoutError as exc:
                raise RenderFailure(RenderReason.RENDER_TIMEOUT, str(exc)) from exc
            except PlaywrightError as exc:
                raise RenderFailure(RenderReason.ENGINE_COMM_ERROR, str(exc)) from exc
