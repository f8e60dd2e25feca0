"""Cursor-based pagination over name-ordered items."""

from __future__ import annotations

import base64
import binascii
from bisect import bisect_right
from typing import Protocol, Sequence, TypeVar


class _Named(Protocol):
    name: str


T = TypeVar("T", bound=_Named)


def encode_cursor(name: str) -> str:
    """Cursor pointing just past the item with this name."""
    return base64.b64encode(name.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> str:
    """Name held in a cursor; raises ValueError if the cursor is malformed."""
    try:
        return base64.b64decode(cursor, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError(f"invalid cursor {cursor!r}: {exc}") from exc


def paginate(items: Sequence[T], cursor: str | None, limit: int | None) -> tuple[list[T], str]:
    """Return one page of name-sorted items and the cursor of the next page.

    The next cursor is empty when no limit is set or the page came out short.
    """
    if limit is not None and limit < 0:
        raise ValueError("pagination limit must not be negative")
    start = 0
    if cursor:
        start = bisect_right(items, decode_cursor(cursor), key=lambda item: item.name)
    end = len(items) if limit is None else min(len(items), start + limit)
    page = list(items[start:end])
    next_cursor = ""
    if limit is not None and page and len(page) >= limit:
        next_cursor = encode_cursor(page[-1].name)
    return page, next_cursor