"""Response envelope and pagination block shared by every endpoint."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


def ok(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    """Wrap a payload as {"success": true, "message"?, "data"}."""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool

    @classmethod
    def of(cls, total: int, page: int, limit: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )
