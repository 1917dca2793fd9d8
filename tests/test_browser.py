import unittest
from importlib import util as importlib_util
from unittest.mock import patch

from invoice_pipeline.errors import RenderFailure, RenderReason
from invoice_pipeline.rendering import PrintOptions

PLAYWRIGHT_AVAILABLE = importlib_util.find_spec("playwright") is not None
if PLAYWRIGHT_AVAILABLE:
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    from invoice_pipeline.browser import ChromiumEngine


class FakePage:
    def __init__(self, content_error=None, pdf_error=None) -> None:
        self.content_error = content_error
        self.pdf_error = pdf_error
        self.content_calls = []
        self.pdf_calls = []

    def set_content(self, markup, **kwargs):
        self.content_calls.append((markup, kwargs))
        if self.content_error is not None:
            raise self.content_error

    def pdf(self, **kwargs):
        self.pdf_calls.append(kwargs)
        if self.pdf_error is not None:
            raise self.pdf_error
        return b"%PDF-1.7 chromium"


class FakeBrowser:
    def __init__(self, page, close_error=None) -> None:
        self.page = page
        self.close_error = close_error
        self.closed = False

    def new_page(self):
        return self.page

    def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeChromium:
    def __init__(self, browser, launch_error=None) -> None:
        self.browser = browser
        self.launch_error = launch_error
        self.launch_kwargs = None

    def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.launch_error is not None:
            raise self.launch_error
        return self.browser


class FakePlaywright:
    def __init__(self, chromium) -> None:
        self.chromium = chromium
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakeManager:
    def __init__(self, playwright, start_error=None) -> None:
        self.playwright = playwright
        self.start_error = start_error

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        return self.playwright


@unittest.skipUnless(PLAYWRIGHT_AVAILABLE, "playwright is not installed")
class ChromiumEngineTests(unittest.TestCase):
    def _install(self, page=None, launch_error=None, start_error=None, close_error=None):
        self.page = page or FakePage()
        self.browser = FakeBrowser(self.page, close_error=close_error)
        self.chromium = FakeChromium(self.browser, launch_error=launch_error)
        self.playwright = FakePlaywright(self.chromium)
        patcher = patch(
            "invoice_pipeline.browser.sync_playwright",
            return_value=FakeManager(self.playwright, start_error=start_error),
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def _print(self) -> bytes:
        engine = ChromiumEngine(executable_path="/opt/chromium/chrome")
        return engine.print_pdf("<html><body>INV-001</body></html>", PrintOptions(timeout_ms=4000))

    def test_prints_a4_pdf_after_network_idle(self) -> None:
        self._install()

        pdf = self._print()

        self.assertEqual(pdf, b"%PDF-1.7 chromium")
        markup, content_kwargs = self.page.content_calls[0]
        self.assertIn("INV-001", markup)
        self.assertEqual(content_kwargs, {"wait_until": "networkidle", "timeout": 4000})
        self.assertEqual(
            self.page.pdf_calls[0],
            {
                "format": "A4",
                "print_background": True,
                "margin": {"top": "20px", "right": "20px", "bottom": "20px", "left": "20px"},
            },
        )
        self.assertTrue(self.chromium.launch_kwargs["headless"])
        self.assertEqual(self.chromium.launch_kwargs["executable_path"], "/opt/chromium/chrome")
        self.assertIn("--no-sandbox", self.chromium.launch_kwargs["args"])
        self.assertTrue(self.browser.closed)
        self.assertTrue(self.playwright.stopped)

    def test_launch_failure_is_engine_unavailable(self) -> None:
        self._install(launch_error=PlaywrightError("Executable doesn't exist"))

        with self.assertRaises(RenderFailure) as ctx:
            self._print()

        self.assertEqual(ctx.exception.reason, RenderReason.ENGINE_UNAVAILABLE)
        self.assertFalse(ctx.exception.transient)
        self.assertTrue(self.playwright.stopped)

    def test_driver_start_failure_is_engine_unavailable(self) -> None:
        self._install(start_error=OSError("driver missing"))

        with self.assertRaises(RenderFailure) as ctx:
            self._print()

        self.assertEqual(ctx.exception.reason, RenderReason.ENGINE_UNAVAILABLE)

    def test_content_timeout_is_render_timeout(self) -> None:
        self._install(page=FakePage(content_error=PlaywrightTimeoutError("Timeout 4000ms exceeded")))

        with self.assertRaises(RenderFailure) as ctx:
            self._print()

        self.assertEqual(ctx.exception.reason, RenderReason.RENDER_TIMEOUT)
        self.assertTrue(ctx.exception.transient)
        self.assertTrue(self.browser.closed)
        self.assertTrue(self.playwright.stopped)

    def test_protocol_error_is_comm_error(self) -> None:
        self._install(page=FakePage(pdf_error=PlaywrightError("Target page, context or browser has been closed")))

        with self.assertRaises(RenderFailure) as ctx:
            self._print()

        self.assertEqual(ctx.exception.reason, RenderReason.ENGINE_COMM_ERROR)
        self.assertTrue(self.browser.closed)

    def test_close_failure_does_not_discard_result(self) -> None:
        self._install(close_error=PlaywrightError("Browser has been closed"))

        with self.assertLogs("invoice_pipeline.browser", level="WARNING"):
            pdf = self._print()

        self.assertEqual(pdf, b"%PDF-1.7 chromium")
        self.assertTrue(self.playwright.stopped)


if __name__ == "__main__":
    unittest.main()
