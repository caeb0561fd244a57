"""Shared pagination envelope for list endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from ecoquest_api.services.economy.pagination import PageMeta


class PageMetaResponse(BaseModel):
    total: int
    page: int
    limit: int
    lastPage: int
    hasNextPage: bool
    hasPrevPage: bool

    @classmethod
    def from_meta(cls, meta: PageMeta) -> "PageMetaResponse":
        return cls(
            total=meta.total,
            page=meta.page,
            limit=meta.limit,
            lastPage=meta.last_page,
            hasNextPage=meta.has_next_page,
            hasPrevPage=meta.has_prev_page,
        )
