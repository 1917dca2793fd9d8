"""In-process render engine built on fpdf2's HTML support.

Used on hosts without a browser. Only the ``<body>`` of the filled template
is painted; stylesheets are ignored.
"""

from __future__ import annotations

import re

from fpdf import FPDF
from fpdf.errors import FPDFException

from .errors import RenderFailure, RenderReason
from .fonts import FontManager
from .rendering import PrintOptions

PX_TO_MM = 25.4 / 96.0
FONT_SIZE_NORMAL = 10

_BODY_PATTERN = re.compile(r"<body[^>]*>(.*)</body>", re.DOTALL | re.IGNORECASE)
_INTER_TAG_SPACE = re.compile(r">\s+<")

LATIN1_REPLACEMENTS = {
    "₹": "Rs.",  # rupee sign
    "€": "EUR ",
    "–": "-",
    "—": "-",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "…": "...",
}


def extract_body(markup: str) -> str:
    match = _BODY_PATTERN.search(markup)
    body = match.group(1) if match else markup
    return _INTER_TAG_SPACE.sub("><", body.strip())


def to_latin1(text: str) -> str:
    for char, replacement in LATIN1_REPLACEMENTS.items():
        text = text.replace(char, replacement)
    return text.encode("latin-1", "replace").decode("latin-1")


class FpdfEngine:
    name = "fpdf"

    def print_pdf(self, markup: str, options: PrintOptions) -> bytes:
        margin = options.margin_px * PX_TO_MM
        pdf = FPDF(orientation="P", unit="mm", format=options.page_format)
        pdf.set_margins(margin, margin, margin)
        pdf.set_auto_page_break(auto=True, margin=margin)
        pdf.add_page()

        fonts = FontManager(pdf)
        fonts.set_font(FONT_SIZE_NORMAL)
        body = extract_body(markup)
        if not fonts.unicode:
            body = to_latin1(body)

        try:
            pdf.write_html(body, font_family=fonts.family)
            return bytes(pdf.output())
        except FPDFException as exc:
            raise RenderFailure(RenderReason.UNKNOWN, f"fpdf could not paint invoice: {exc}") from exc
