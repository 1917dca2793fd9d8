import os
import tempfile
import unittest
from datetime import date
from importlib import util as importlib_util

from invoice_pipeline.errors import RenderFailure, RenderReason
from invoice_pipeline.rendering import InvoiceRenderer, PrintOptions, load_engine

from invoice_fixtures import FakeEngine, make_document, render_failure

FPDF_AVAILABLE = importlib_util.find_spec("fpdf") is not None
if FPDF_AVAILABLE:
    from invoice_pipeline.fpdf_engine import FpdfEngine, extract_body, to_latin1


def fixed_today() -> date:
    return date(2026, 10, 20)


class RendererRetryTests(unittest.TestCase):
    def _renderer(self, engine: FakeEngine, retries: int = 1) -> InvoiceRenderer:
        return InvoiceRenderer(engine, currency_symbol="₹", retries=retries, timeout_ms=5000, today=fixed_today)

    def test_success_uses_a_single_engine_call(self) -> None:
        engine = FakeEngine()

        pdf = self._renderer(engine).render(make_document())

        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(engine.calls, 1)

    def test_print_options_are_a4_with_margins_and_backgrounds(self) -> None:
        engine = FakeEngine()

        self._renderer(engine).render(make_document())

        options = engine.options[0]
        self.assertEqual(options.page_format, "A4")
        self.assertTrue(options.print_background)
        self.assertEqual(options.timeout_ms, 5000)
        self.assertEqual(
            options.margins(),
            {"top": "20px", "right": "20px", "bottom": "20px", "left": "20px"},
        )

    def test_timeout_is_retried_once(self) -> None:
        engine = FakeEngine([render_failure(RenderReason.RENDER_TIMEOUT)])

        with self.assertLogs("invoice_pipeline.rendering", level="WARNING"):
            pdf = self._renderer(engine).render(make_document())

        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(engine.calls, 2)
        self.assertEqual(engine.markups[0], engine.markups[1])

    def test_repeated_comm_errors_surface_after_retry(self) -> None:
        engine = FakeEngine(
            [
                render_failure(RenderReason.ENGINE_COMM_ERROR),
                render_failure(RenderReason.ENGINE_COMM_ERROR),
            ]
        )

        with self.assertLogs("invoice_pipeline.rendering", level="WARNING"):
            with self.assertRaises(RenderFailure) as ctx:
                self._renderer(engine).render(make_document())

        self.assertEqual(ctx.exception.reason, RenderReason.ENGINE_COMM_ERROR)
        self.assertEqual(engine.calls, 2)

    def test_permanent_reasons_are_not_retried(self) -> None:
        for reason in (RenderReason.ENGINE_UNAVAILABLE, RenderReason.UNKNOWN):
            with self.subTest(reason=reason):
                engine = FakeEngine([render_failure(reason)])
                with self.assertLogs("invoice_pipeline.rendering", level="WARNING"):
                    with self.assertRaises(RenderFailure) as ctx:
                        self._renderer(engine).render(make_document())
                self.assertEqual(ctx.exception.reason, reason)
                self.assertEqual(engine.calls, 1)

    def test_zero_retries_disables_retry(self) -> None:
        engine = FakeEngine([render_failure(RenderReason.RENDER_TIMEOUT)])

        with self.assertLogs("invoice_pipeline.rendering", level="WARNING"):
            with self.assertRaises(RenderFailure):
                self._renderer(engine, retries=0).render(make_document())

        self.assertEqual(engine.calls, 1)

    def test_unexpected_engine_exception_is_unknown(self) -> None:
        engine = FakeEngine([ValueError("bad page size")])

        with self.assertLogs("invoice_pipeline.rendering", level="WARNING"):
            with self.assertRaises(RenderFailure) as ctx:
                self._renderer(engine).render(make_document())

        self.assertEqual(ctx.exception.reason, RenderReason.UNKNOWN)
        self.assertIn("ValueError: bad page size", ctx.exception.detail)
        self.assertEqual(engine.calls, 1)

    def test_missing_template_never_reaches_engine(self) -> None:
        engine = FakeEngine()
        with tempfile.TemporaryDirectory() as tmp:
            renderer = InvoiceRenderer(engine, template_path=os.path.join(tmp, "gone.html"), today=fixed_today)

            with self.assertRaises(RenderFailure) as ctx:
                renderer.render(make_document())

        self.assertEqual(ctx.exception.reason, RenderReason.TEMPLATE_UNAVAILABLE)
        self.assertEqual(engine.calls, 0)

    def test_markup_is_deterministic_for_a_fixed_date(self) -> None:
        renderer = self._renderer(FakeEngine())
        document = make_document()

        self.assertEqual(renderer.render_markup(document), renderer.render_markup(document))

    def test_unknown_engine_name_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_engine("wkhtmltopdf")


@unittest.skipUnless(FPDF_AVAILABLE, "fpdf is not installed")
class FpdfEngineTests(unittest.TestCase):
    def test_render_invoice_returns_pdf_bytes(self) -> None:
        renderer = InvoiceRenderer(FpdfEngine(), currency_symbol="₹", today=fixed_today)

        pdf = renderer.render(make_document("INV-001"))

        self.assertIsInstance(pdf, bytes)
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertGreater(len(pdf), 100)

    def test_direct_print_uses_requested_page_format(self) -> None:
        markup = "<html><body><h1>INVOICE</h1><p>INV-002</p></body></html>"

        pdf = FpdfEngine().print_pdf(markup, PrintOptions(page_format="A4"))

        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_extract_body_drops_head_and_inter_tag_whitespace(self) -> None:
        markup = "<html><head><style>p {}</style></head><body>\n<p>a</p>\n  <p>b</p>\n</body></html>"

        self.assertEqual(extract_body(markup), "<p>a</p><p>b</p>")

    def test_to_latin1_replaces_rupee_sign(self) -> None:
        self.assertEqual(to_latin1("₹295.00 – paid"), "Rs.295.00 - paid")
        self.assertEqual(to_latin1("naïve ☕"), "naïve ?")


if __name__ == "__main__":
    unittest.main()
