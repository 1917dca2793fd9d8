"""Helpers for paging through invoice history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .config import DEFAULT_PAGE_SIZE, HISTORY_MAX_PAGE_SIZE


@dataclass(frozen=True)
class Pagination:
    current_page: int
    page_size: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.page_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
            "totalInvoices": self.total_count,
            "hasNextPage": self.has_next,
            "hasPrevPage": self.has_prev,
        }


def _coerce_positive(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def normalize_page_args(
    page: Any,
    page_size: Any,
    max_page_size: int = HISTORY_MAX_PAGE_SIZE,
) -> Tuple[int, int]:
    return _coerce_positive(page, 1), min(_coerce_positive(page_size, DEFAULT_PAGE_SIZE), max_page_size)


def total_pages_for(total_count: int, page_size: int) -> int:
    if total_count <= 0:
        return 0
    return (total_count + page_size - 1) // page_size


def paginate(total_count: int, page: int, page_size: int) -> Pagination:
    total_pages = total_pages_for(total_count, page_size)
    return Pagination(
        current_page=page,
        page_size=page_size,
        total_pages=total_pages,
        total_count=total_count,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
