"""Public package API for invoice generation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .pipeline import InvoicePipeline


def build_pipeline(**kwargs) -> "InvoicePipeline":
    from .pipeline import build_pipeline as _build_pipeline

    return _build_pipeline(**kwargs)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = ["build_pipeline", "run"]
