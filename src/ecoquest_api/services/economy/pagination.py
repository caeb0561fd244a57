"""Offset pagination shared by the listing operations."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from ecoquest_api.core.settings import settings


ItemT = TypeVar("ItemT")


@dataclass(frozen=True)
class PageMeta:
    total: int
    page: int
    limit: int
    last_page: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, *, total: int, page: int, limit: int) -> "PageMeta":
        last_page = max(1, math.ceil(total / limit)) if limit else 1
        return cls(
            total=total,
            page=page,
            limit=limit,
            last_page=last_page,
            has_next_page=page < last_page,
            has_prev_page=page > 1,
        )


@dataclass(frozen=True)
class Page(Generic[ItemT]):
    items: Sequence[ItemT]
    meta: PageMeta


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to the configured bounds."""

    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else settings.pagination_default_limit
    return page, min(limit, settings.pagination_max_limit)


__all__ = ["Page", "PageMeta", "normalize_page"]
